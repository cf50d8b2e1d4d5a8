"""Async HTTP client for a Blockfrost-compatible Cardano node/indexer."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from certledger.ledger.commitment import CertificateCommitment

logger = logging.getLogger(__name__)


def _json(resp: httpx.Response) -> Any:
    """Decode a JSON body; a non-JSON answer (e.g. a proxy error page) is a transport failure."""
    try:
        return resp.json()
    except ValueError as exc:
        raise httpx.DecodingError(
            f"Indexer returned a non-JSON body ({resp.status_code})", request=resp.request,
        ) from exc


class LookupState(str, Enum):
    FOUND = "found"
    NOT_INDEXED = "not_indexed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class MetadataLookup:
    """Result of a metadata query.

    ``NOT_INDEXED`` is the expected state right after submission: the
    transaction sits in the mempool, or the indexer has not surfaced its
    metadata yet. ``NOT_FOUND`` means the ledger does not know the id.
    """

    state: LookupState
    raw: Any = None
    commitment: CertificateCommitment | None = None

    @property
    def found(self) -> bool:
        return self.state is LookupState.FOUND


class BlockfrostNode:
    """Reads balances, UTXOs and transaction metadata; submits signed transactions."""

    def __init__(self, base_url: str, project_id: str, timeout: float = 30.0,
                 transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"project_id": project_id},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Account ──

    async def get_balance(self, address: str) -> int:
        """Spendable lovelace held at ``address``; 0 for an address never seen on chain."""
        resp = await self._http.get(f"/addresses/{address}")
        if resp.status_code == 404:
            return 0
        resp.raise_for_status()
        for amount in _json(resp).get("amount", []):
            if amount.get("unit") == "lovelace":
                return int(amount["quantity"])
        return 0

    async def get_utxos(self, address: str) -> list[dict[str, Any]]:
        """All UTXOs at ``address``, following Blockfrost pagination."""
        utxos: list[dict[str, Any]] = []
        page = 1
        while True:
            resp = await self._http.get(
                f"/addresses/{address}/utxos", params={"page": page, "count": 100},
            )
            if resp.status_code == 404:
                return utxos
            resp.raise_for_status()
            batch = _json(resp)
            utxos.extend(batch)
            if len(batch) < 100:
                return utxos
            page += 1

    # ── Transactions ──

    async def submit_tx(self, signed_tx: bytes) -> str:
        """Submit CBOR bytes; returns the transaction id once the node accepts it."""
        resp = await self._http.post(
            "/tx/submit",
            content=signed_tx,
            headers={"Content-Type": "application/cbor"},
        )
        resp.raise_for_status()
        tx_id = _json(resp)
        return tx_id if isinstance(tx_id, str) else str(tx_id)

    async def in_mempool(self, tx_id: str) -> bool:
        resp = await self._http.get(f"/mempool/{tx_id}")
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True

    async def get_transaction(self, tx_id: str) -> dict[str, Any] | None:
        resp = await self._http.get(f"/txs/{tx_id}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return _json(resp)

    async def get_latest_block(self) -> dict[str, Any]:
        resp = await self._http.get("/blocks/latest")
        resp.raise_for_status()
        return _json(resp)

    async def get_tx_metadata(self, tx_id: str) -> MetadataLookup:
        """Raw metadata for ``tx_id``; the caller normalizes its shape."""
        resp = await self._http.get(f"/txs/{tx_id}/metadata")
        if resp.status_code == 404:
            if await self.in_mempool(tx_id):
                logger.info("Transaction %s is pending in mempool", tx_id)
                return MetadataLookup(LookupState.NOT_INDEXED)
            return MetadataLookup(LookupState.NOT_FOUND)
        resp.raise_for_status()
        raw = _json(resp)
        if not raw:
            # Indexed transactions without metadata answer 200 with an empty list
            if await self.get_transaction(tx_id) is not None:
                return MetadataLookup(LookupState.NOT_FOUND)
            return MetadataLookup(LookupState.NOT_INDEXED)
        return MetadataLookup(LookupState.FOUND, raw=raw)
