"""Ledger committer — anchors a batch's certificate hashes in one transaction."""

import asyncio
import logging

import httpx

from certledger.common.config import CertLedgerSettings
from certledger.common.exceptions import (
    CertLedgerError,
    CommitFailedError,
    InsufficientFundsError,
)
from certledger.ledger.account import LedgerAccount, SignedTransaction
from certledger.ledger.commitment import build_commitment, validate_for_ledger

logger = logging.getLogger(__name__)


def is_transient(exc: Exception) -> bool:
    """Network failures and 5xx answers; everything else is a hard rejection."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class LedgerCommitter:
    """Builds, signs and submits the commitment transaction for a batch.

    All hashes go into a single transaction or none do. Only the submission
    of already-signed bytes is retried: the transaction id is derived from
    those bytes, so a resubmission can never produce a second commitment.
    """

    def __init__(self, settings: CertLedgerSettings, node, account: LedgerAccount):
        self.settings = settings
        self.node = node
        self.account = account

    async def commit(
        self,
        batch_id: str,
        batch_name: str,
        hashes: list[str],
        academic_year: str,
        semester: str,
        faculty: str,
    ) -> str:
        """Anchor ``hashes`` and return the accepted transaction id.

        Acceptance into the mempool is not finality; poll ``LedgerReader``
        for that.

        Raises:
            ValidationError: malformed input, before any network call.
            InsufficientFundsError: balance below the operating threshold.
            CommitFailedError: build, sign or submission failed.
        """
        commitment = build_commitment(
            issuer=self.settings.issuer,
            authority=self.settings.authority,
            batch_id=batch_id,
            batch_name=batch_name,
            hashes=list(hashes),
            academic_year=academic_year,
            semester=semester,
            faculty=faculty,
        )
        validate_for_ledger(commitment)

        logger.info(
            "Committing %d certificate hashes for batch %s",
            commitment.certificate_count, batch_id,
            extra={"batch_id": batch_id},
        )
        await self._ensure_funds()

        async with self.account.lock:
            try:
                signed = await self.account.sign(
                    commitment.to_metadata(self.settings.metadata_label),
                    self.settings.self_payment_lovelace,
                )
            except CertLedgerError:
                raise
            except Exception as exc:
                raise CommitFailedError(
                    f"Could not build commitment transaction for batch {batch_id}: {exc}",
                    cause=exc,
                ) from exc
            tx_id = await self._submit(signed, batch_id)

        logger.info(
            "Batch %s committed in transaction %s", batch_id, tx_id,
            extra={"batch_id": batch_id, "transaction_id": tx_id},
        )
        return tx_id

    async def status(self) -> dict:
        """Funding account health: balance, spendable UTXOs, and whether a commit can proceed."""
        balance = await self.node.get_balance(self.account.address)
        utxos = await self.node.get_utxos(self.account.address)
        return {
            "address": self.account.address,
            "network": self.settings.cardano_network,
            "balance_lovelace": balance,
            "balance_ada": balance / 1_000_000,
            "utxo_count": len(utxos),
            "min_balance_lovelace": self.settings.min_balance_lovelace,
            "can_transact": balance >= self.settings.min_balance_lovelace and bool(utxos),
        }

    async def _ensure_funds(self) -> None:
        required = self.settings.min_balance_lovelace
        try:
            balance = await self.node.get_balance(self.account.address)
            utxos = await self.node.get_utxos(self.account.address) if balance >= required else []
        except Exception as exc:
            raise CommitFailedError(f"Could not query funding account: {exc}", cause=exc) from exc

        if balance < required:
            raise InsufficientFundsError(
                f"Insufficient funds. Need at least {required / 1_000_000:.2f} ADA, "
                f"have {balance / 1_000_000:.2f} ADA",
                balance=balance,
                required=required,
            )
        if not utxos:
            raise InsufficientFundsError(
                "No UTXOs available in funding account", balance=balance, required=required,
            )

    async def _submit(self, signed: SignedTransaction, batch_id: str) -> str:
        retries = max(self.settings.submit_retries, 0)
        last_error: Exception | None = None

        for attempt in range(retries + 1):
            try:
                tx_id = await self.node.submit_tx(signed.cbor)
                if tx_id != signed.tx_id:
                    logger.warning(
                        "Node returned transaction id %s, expected %s", tx_id, signed.tx_id,
                    )
                return tx_id
            except Exception as exc:
                last_error = exc
                if attempt > 0 and await self._already_accepted(signed.tx_id):
                    # An earlier attempt reached the node before the connection dropped.
                    logger.warning(
                        "Submission retry for batch %s found transaction %s already accepted",
                        batch_id, signed.tx_id,
                    )
                    return signed.tx_id
                if not is_transient(exc) or attempt == retries:
                    break
                delay = self.settings.submit_backoff_base * (2 ** attempt)
                logger.warning(
                    "Transient submission failure for batch %s (attempt %d/%d): %s",
                    batch_id, attempt + 1, retries + 1, exc,
                )
                await asyncio.sleep(delay)

        raise CommitFailedError(
            f"Failed to submit certificate batch {batch_id}: {last_error}",
            cause=last_error,
        )

    async def _already_accepted(self, tx_id: str) -> bool:
        try:
            if await self.node.in_mempool(tx_id):
                return True
            return await self.node.get_transaction(tx_id) is not None
        except Exception:
            logger.debug("Could not confirm acceptance of %s", tx_id, exc_info=True)
            return False
