from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_utils import to_hex

from nested_safe_builder.evm.safe_tx import SIGNING_PAYLOAD_VERSION, SafeTransaction


@dataclass(slots=True, frozen=True)
class SigningPayload:
    safe: str
    nonce: int
    chain_id: int
    encoded: bytes
    safe_tx_hash: bytes
    version: str = SIGNING_PAYLOAD_VERSION

    def as_dict(self) -> dict[str, Any]:
        return {
            "safe": self.safe,
            "nonce": self.nonce,
            "chain_id": self.chain_id,
            "encoded": to_hex(self.encoded),
            "safe_tx_hash": to_hex(self.safe_tx_hash),
            "version": self.version,
        }


def compile_signing_payload(transaction: SafeTransaction) -> SigningPayload:
    encoded = transaction.encode_transaction_data()
    return SigningPayload(
        safe=transaction.safe,
        nonce=transaction.nonce,
        chain_id=transaction.chain_id,
        encoded=encoded,
        safe_tx_hash=transaction.safe_tx_hash(),
    )
