"""Ledger reader — fetches and normalizes commitment metadata."""

import asyncio
import logging
from typing import Any

from certledger.common.config import CertLedgerSettings
from certledger.ledger.commitment import CertificateCommitment, parse_commitment
from certledger.ledger.node import LookupState, MetadataLookup

logger = logging.getLogger(__name__)


class LedgerReader:
    def __init__(self, settings: CertLedgerSettings, node):
        self.settings = settings
        self.node = node

    async def read_metadata(self, tx_id: str) -> MetadataLookup:
        """Tri-state lookup; ``FOUND`` always carries a parsed commitment.

        Metadata that is present but holds no certificate commitment is
        reported as ``NOT_FOUND``. Transport errors propagate.
        """
        lookup = await self.node.get_tx_metadata(tx_id)
        if lookup.state is not LookupState.FOUND:
            return lookup

        commitment = parse_commitment(lookup.raw, self.settings.metadata_label)
        if commitment is None:
            logger.warning("Transaction %s carries no certificate commitment", tx_id)
            return MetadataLookup(LookupState.NOT_FOUND, raw=lookup.raw)
        return MetadataLookup(LookupState.FOUND, raw=lookup.raw, commitment=commitment)

    async def read_commitment(self, tx_id: str) -> CertificateCommitment | None:
        """The commitment, or None while not indexed or when absent."""
        lookup = await self.read_metadata(tx_id)
        return lookup.commitment

    async def exists(self, tx_id: str) -> bool:
        return await self.node.get_transaction(tx_id) is not None

    async def transaction_details(self, tx_id: str) -> dict[str, Any] | None:
        tx = await self.node.get_transaction(tx_id)
        if tx is None:
            return None
        confirmations = 0
        height = tx.get("block_height")
        if height is not None:
            latest = await self.node.get_latest_block()
            confirmations = max(int(latest.get("height", height)) - int(height) + 1, 0)
        return {
            "transaction_id": tx.get("hash", tx_id),
            "block_height": height,
            "block_time": tx.get("block_time"),
            "fees": tx.get("fees"),
            "confirmations": confirmations,
        }

    async def wait_for_commitment(
        self, tx_id: str, attempts: int = 10, interval: float = 20.0,
    ) -> MetadataLookup:
        """Poll until the commitment is indexed, gone for good, or attempts run out."""
        lookup = MetadataLookup(LookupState.NOT_INDEXED)
        for attempt in range(attempts):
            lookup = await self.read_metadata(tx_id)
            if lookup.state is not LookupState.NOT_INDEXED:
                return lookup
            if attempt < attempts - 1:
                await asyncio.sleep(interval)
        return lookup
