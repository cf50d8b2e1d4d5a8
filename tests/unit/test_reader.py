"""Tests for LedgerReader — tri-state lookups over the fake node."""

import httpx
import pytest

from certledger.ledger.commitment import build_commitment
from certledger.ledger.node import LookupState, MetadataLookup

HASHES = ["7" * 64, "8" * 64]


async def _committed(committer) -> str:
    return await committer.commit("B7", "Law Winter 2025", HASHES, "2025/2026", "Semester 1", "Law")


class TestReadMetadata:
    async def test_commit_then_read_round_trip(self, committer, reader):
        tx_id = await _committed(committer)
        lookup = await reader.read_metadata(tx_id)
        assert lookup.state is LookupState.FOUND
        assert lookup.commitment.hashes == tuple(HASHES)
        assert lookup.commitment.batch_id == "B7"

    async def test_not_indexed_then_found(self, committer, reader, ledger):
        ledger.auto_index = False
        tx_id = await _committed(committer)
        assert (await reader.read_metadata(tx_id)).state is LookupState.NOT_INDEXED
        ledger.index()
        assert (await reader.read_metadata(tx_id)).state is LookupState.FOUND

    async def test_not_found(self, reader):
        assert (await reader.read_metadata("0" * 64)).state is LookupState.NOT_FOUND

    async def test_metadata_without_commitment_is_not_found(self, reader, ledger):
        ledger.indexed["9" * 64] = {"674": {"msg": ["hello"]}}
        lookup = await reader.read_metadata("9" * 64)
        assert lookup.state is LookupState.NOT_FOUND
        assert lookup.commitment is None

    async def test_bare_commitment_shape(self, settings, reader, ledger):
        commitment = build_commitment(
            issuer=settings.issuer, authority=settings.authority, batch_id="B8",
            batch_name="n", hashes=HASHES, academic_year="y", semester="s", faculty="f",
        )
        ledger.indexed["a" * 64] = commitment.to_dict()
        assert await reader.read_commitment("a" * 64) == commitment

    async def test_transport_error_propagates(self, reader, ledger):
        ledger.metadata_error = httpx.ConnectError("indexer down")
        with pytest.raises(httpx.ConnectError):
            await reader.read_metadata("b" * 64)


class TestDetails:
    async def test_exists(self, committer, reader):
        tx_id = await _committed(committer)
        assert await reader.exists(tx_id)
        assert not await reader.exists("0" * 64)

    async def test_confirmations(self, committer, reader):
        tx_id = await _committed(committer)
        details = await reader.transaction_details(tx_id)
        assert details["block_height"] == 100
        assert details["confirmations"] == 5

    async def test_unknown_transaction_details(self, reader):
        assert await reader.transaction_details("0" * 64) is None


class TestWait:
    async def test_wait_until_indexed(self, reader):
        states = [MetadataLookup(LookupState.NOT_INDEXED)] * 2

        class Node:
            async def get_tx_metadata(self, tx_id):
                if states:
                    return states.pop()
                return MetadataLookup(LookupState.NOT_FOUND)

        reader.node = Node()
        lookup = await reader.wait_for_commitment("c" * 64, attempts=5, interval=0)
        assert lookup.state is LookupState.NOT_FOUND
        assert states == []

    async def test_gives_up_after_attempts(self, committer, reader, ledger):
        ledger.auto_index = False
        tx_id = await _committed(committer)
        lookup = await reader.wait_for_commitment(tx_id, attempts=3, interval=0)
        assert lookup.state is LookupState.NOT_INDEXED
        assert len(ledger.metadata_calls) == 3
