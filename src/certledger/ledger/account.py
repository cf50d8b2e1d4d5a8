"""
The ledger operating account.

One signing key funds every commitment. ``LedgerAccount`` owns that key
together with an ``asyncio.Lock`` so that building, signing and submitting
a transaction happen one at a time per process; two pipelines never select
the same UTXOs concurrently.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from certledger.common.exceptions import CommitFailedError


@dataclass(frozen=True)
class SignedTransaction:
    tx_id: str
    cbor: bytes


class CardanoSigner:
    """Builds and signs metadata transactions with pycardano.

    The pycardano chain context is blocking, so callers run ``build_signed``
    in a worker thread.
    """

    def __init__(self, project_id: str, api_url: str, signing_key_hex: str,
                 address: str, mainnet: bool = False):
        from pycardano import Address, Network

        self.project_id = project_id
        self.base_url = api_url[:-3] if api_url.endswith("/v0") else api_url
        self.network = Network.MAINNET if mainnet else Network.TESTNET
        self._context = None
        self._signing_key = self._load_key(signing_key_hex)
        self.address = Address.from_primitive(address)

    @property
    def context(self):
        if self._context is None:
            from pycardano import BlockFrostChainContext

            self._context = BlockFrostChainContext(
                project_id=self.project_id, network=self.network, base_url=self.base_url,
            )
        return self._context

    @staticmethod
    def _load_key(signing_key_hex: str):
        from pycardano import PaymentSigningKey

        raw = signing_key_hex.strip()
        if len(raw) == 64:
            return PaymentSigningKey(bytes.fromhex(raw))
        # cardano-cli envelope: CBOR byte string prefixed with 5820
        return PaymentSigningKey.from_cbor(raw)

    def build_signed(self, metadata: dict[int, Any], recipient: str, lovelace: int) -> SignedTransaction:
        from pycardano import (
            Address,
            AlonzoMetadata,
            AuxiliaryData,
            Metadata,
            TransactionBuilder,
            TransactionOutput,
        )

        builder = TransactionBuilder(self.context)
        builder.add_input_address(self.address)
        builder.add_output(TransactionOutput(Address.from_primitive(recipient), lovelace))
        builder.auxiliary_data = AuxiliaryData(AlonzoMetadata(metadata=Metadata(metadata)))
        tx = builder.build_and_sign([self._signing_key], change_address=self.address)

        payload = tx.to_cbor()
        if isinstance(payload, str):
            payload = bytes.fromhex(payload)
        return SignedTransaction(tx_id=str(tx.id), cbor=payload)


class LedgerAccount:
    """Injected signing account with serialized submissions."""

    def __init__(self, address: str, signer, receiving_addresses: list[str] | None = None):
        self.address = address
        self.signer = signer
        self._receiving = receiving_addresses or [address]
        self.lock = asyncio.Lock()

    @property
    def receiving_address(self) -> str:
        """First receiving address; target of the commitment self-payment."""
        return self._receiving[0]

    async def sign(self, metadata: dict[int, Any], lovelace: int) -> SignedTransaction:
        """Build and sign a self-payment carrying ``metadata``.

        Callers hold ``lock`` across sign and submit.
        """
        if self.signer is None:
            raise CommitFailedError("No signing key configured for the ledger account")
        return await asyncio.to_thread(
            self.signer.build_signed, metadata, self.receiving_address, lovelace,
        )
