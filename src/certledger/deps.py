"""Dependency injection singletons for CertLedger."""

from certledger.common.config import get_settings
from certledger.common.database import DatabaseManager
from certledger.issuance.pipeline import BatchIssuancePipeline
from certledger.issuance.store import CertificateStore
from certledger.ledger.account import CardanoSigner, LedgerAccount
from certledger.ledger.committer import LedgerCommitter
from certledger.ledger.node import BlockfrostNode
from certledger.ledger.reader import LedgerReader
from certledger.messaging.client import FireFlyClient
from certledger.messaging.intake import BatchIntake
from certledger.verification.engine import VerificationEngine

_db: DatabaseManager | None = None
_store: CertificateStore | None = None
_node = None
_account: LedgerAccount | None = None
_committer: LedgerCommitter | None = None
_reader: LedgerReader | None = None
_channel = None
_intake: BatchIntake | None = None
_pipeline: BatchIssuancePipeline | None = None
_engine: VerificationEngine | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_store() -> CertificateStore:
    global _store
    if _store is None:
        _store = CertificateStore()
    return _store


def get_ledger_node():
    global _node
    if _node is None:
        settings = get_settings()
        _node = BlockfrostNode(
            settings.ledger_api_url,
            settings.blockfrost_project_id,
            timeout=settings.ledger_timeout,
        )
    return _node


def get_ledger_account() -> LedgerAccount:
    global _account
    if _account is None:
        settings = get_settings()
        signer = None
        if settings.signing_key_hex and settings.wallet_address:
            signer = CardanoSigner(
                settings.blockfrost_project_id,
                settings.ledger_api_url,
                settings.signing_key_hex,
                settings.wallet_address,
                mainnet=settings.is_mainnet,
            )
        _account = LedgerAccount(settings.wallet_address, signer)
    return _account


def get_committer() -> LedgerCommitter:
    global _committer
    if _committer is None:
        _committer = LedgerCommitter(get_settings(), get_ledger_node(), get_ledger_account())
    return _committer


def get_reader() -> LedgerReader:
    global _reader
    if _reader is None:
        _reader = LedgerReader(get_settings(), get_ledger_node())
    return _reader


def get_channel():
    global _channel
    if _channel is None:
        settings = get_settings()
        _channel = FireFlyClient(
            settings.firefly_url,
            namespace=settings.firefly_namespace,
            timeout=settings.channel_timeout,
        )
    return _channel


def get_intake() -> BatchIntake:
    global _intake
    if _intake is None:
        _intake = BatchIntake(get_settings(), get_channel(), get_store())
    return _intake


def get_pipeline() -> BatchIssuancePipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = BatchIssuancePipeline(
            get_settings(), get_db(), get_committer(), get_channel(), get_store(),
        )
    return _pipeline


def get_verification_engine() -> VerificationEngine:
    global _engine
    if _engine is None:
        _engine = VerificationEngine(get_settings(), get_db(), get_reader(), get_store())
    return _engine


def override_collaborators(*, node=None, account: LedgerAccount | None = None, channel=None) -> None:
    """Replace the outbound ledger and channel clients (for testing)."""
    global _node, _account, _channel
    if node is not None:
        _node = node
    if account is not None:
        _account = account
    if channel is not None:
        _channel = channel


async def close_clients() -> None:
    for client in (_node, _channel):
        if client is not None and hasattr(client, "aclose"):
            await client.aclose()


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _store, _node, _account, _committer, _reader
    global _channel, _intake, _pipeline, _engine
    _db = None
    _store = None
    _node = None
    _account = None
    _committer = None
    _reader = None
    _channel = None
    _intake = None
    _pipeline = None
    _engine = None
