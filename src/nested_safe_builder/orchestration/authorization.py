from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_utils import to_hex

from nested_safe_builder.environment.base import SafeStateReader
from nested_safe_builder.types import CommandStatus


@dataclass(slots=True, frozen=True)
class ApprovalStatus:
    owner_safe: str
    safe_tx_hash: bytes
    threshold: int
    approvers: tuple[str, ...]

    @property
    def ready(self) -> bool:
        return len(self.approvers) >= self.threshold

    @property
    def status(self) -> CommandStatus:
        return CommandStatus.READY if self.ready else CommandStatus.PENDING

    def as_dict(self) -> dict[str, Any]:
        return {
            "owner_safe": self.owner_safe,
            "safe_tx_hash": to_hex(self.safe_tx_hash),
            "threshold": self.threshold,
            "approvers": list(self.approvers),
            "approvals": len(self.approvers),
            "ready": self.ready,
        }


def approval_status(reader: SafeStateReader, owner_safe: str, safe_tx_hash: bytes) -> ApprovalStatus:
    """Current owners of ``owner_safe`` holding a recorded approval of the hash.

    Owners are re-read on every call, so a removed owner's approval stops
    counting immediately.
    """
    owner = reader.get_safe(owner_safe)
    approvers = tuple(
        approver
        for approver in reader.approvers(owner.address, safe_tx_hash)
        if owner.is_owner(approver)
    )
    return ApprovalStatus(
        owner_safe=owner.address,
        safe_tx_hash=safe_tx_hash,
        threshold=owner.threshold,
        approvers=approvers,
    )


def check_ready(reader: SafeStateReader, owner_safe: str, safe_tx_hash: bytes) -> bool:
    return approval_status(reader, owner_safe, safe_tx_hash).ready
