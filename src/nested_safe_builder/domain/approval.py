from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_utils import to_hex

from nested_safe_builder.evm.addresses import address_sort_key


@dataclass(slots=True, frozen=True)
class ApprovalRecord:
    owner_safe: str
    approver: str
    safe_tx_hash: bytes

    def as_dict(self) -> dict[str, Any]:
        return {
            "owner_safe": self.owner_safe,
            "approver": self.approver,
            "safe_tx_hash": to_hex(self.safe_tx_hash),
        }


class ApprovalLedger:
    """Append-only store of (owner safe, approver, hash) approvals.

    Mirrors the owner Safe's ``approvedHashes`` mapping. Records are never
    removed; recording the same key twice leaves the first record in place.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str, bytes], ApprovalRecord] = {}

    def record(self, owner_safe: str, approver: str, safe_tx_hash: bytes) -> bool:
        key = (owner_safe, approver, safe_tx_hash)
        if key in self._records:
            return False
        self._records[key] = ApprovalRecord(
            owner_safe=owner_safe,
            approver=approver,
            safe_tx_hash=safe_tx_hash,
        )
        return True

    def is_approved(self, owner_safe: str, approver: str, safe_tx_hash: bytes) -> bool:
        return (owner_safe, approver, safe_tx_hash) in self._records

    def approvers(self, owner_safe: str, safe_tx_hash: bytes) -> tuple[str, ...]:
        found = {
            record.approver
            for (safe, _, tx_hash), record in self._records.items()
            if safe == owner_safe and tx_hash == safe_tx_hash
        }
        return tuple(sorted(found, key=address_sort_key))

    def copy(self) -> ApprovalLedger:
        duplicate = ApprovalLedger()
        duplicate._records = dict(self._records)
        return duplicate
