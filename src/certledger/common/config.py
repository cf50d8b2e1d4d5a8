"""CertLedger configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "api_key": "insecure-admin-key-change-me",
}

_BLOCKFROST_URLS = {
    "mainnet": "https://cardano-mainnet.blockfrost.io/api/v0",
    "preprod": "https://cardano-preprod.blockfrost.io/api/v0",
    "preview": "https://cardano-preview.blockfrost.io/api/v0",
}


class CertLedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CERTLEDGER_")

    environment: str = "development"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/certledger.db"

    # API
    api_title: str = "CertLedger"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = "/api"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    log_level: str = "INFO"

    # Issuer identity written into every commitment and checked on verify
    issuer: str = "Cardiff Metropolitan University"
    authority: str = "Cardiff Met Academic Registry"
    default_university: str = "Cardiff Metropolitan University"

    # Ledger
    metadata_label: int = 674
    cardano_network: str = "preprod"
    blockfrost_project_id: str = ""
    blockfrost_url: str = ""
    wallet_address: str = ""
    signing_key_hex: str = ""
    min_balance_lovelace: int = 2_000_000
    self_payment_lovelace: int = 1_000_000
    submit_retries: int = 2
    submit_backoff_base: float = 0.5  # seconds
    ledger_timeout: float = 30.0

    # Private channel (Hyperledger FireFly)
    firefly_url: str = "http://localhost:5000"
    firefly_namespace: str = "default"
    organization_name: str = "cardiff-met"
    partner_organization: str = "icbt-campus"
    channel_timeout: float = 30.0
    inbox_fetch_limit: int = 100

    @property
    def ledger_api_url(self) -> str:
        """Blockfrost base URL, derived from the network unless set explicitly."""
        if self.blockfrost_url:
            return self.blockfrost_url.rstrip("/")
        return _BLOCKFROST_URLS.get(self.cardano_network, _BLOCKFROST_URLS["preprod"])

    @property
    def is_mainnet(self) -> bool:
        return self.cardano_network == "mainnet"

    def explorer_url(self, transaction_id: str) -> str:
        prefix = "" if self.is_mainnet else f"{self.cardano_network}."
        return f"https://{prefix}cardanoscan.io/transaction/{transaction_id}"

    def validate_for_production(self) -> None:
        """Raise if insecure defaults or missing ledger credentials are used outside development."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]
        missing_ledger = [
            field
            for field in ("blockfrost_project_id", "wallet_address", "signing_key_hex")
            if not getattr(self, field)
        ]

        if self.environment != "development":
            if insecure_fields:
                env_vars = ", ".join(f"CERTLEDGER_{f.upper()}" for f in insecure_fields)
                raise RuntimeError(
                    f"Insecure default values detected in '{self.environment}' environment. "
                    f"Set these environment variables to secure values: {env_vars}. "
                    "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
                )
            if missing_ledger:
                env_vars = ", ".join(f"CERTLEDGER_{f.upper()}" for f in missing_ledger)
                raise RuntimeError(
                    f"Ledger credentials missing in '{self.environment}' environment: {env_vars}"
                )

        if insecure_fields:
            warnings.warn(
                "Using insecure default admin key — set CERTLEDGER_API_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> CertLedgerSettings:
    settings = CertLedgerSettings()
    settings.validate_for_production()
    return settings
