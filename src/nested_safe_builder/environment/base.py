from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from nested_safe_builder.domain.safe import SafeState
from nested_safe_builder.evm.safe_tx import SafeTransaction

if TYPE_CHECKING:
    from nested_safe_builder.environment.contracts import StateAccess
    from nested_safe_builder.environment.state import ExecutionReceipt, StateOverride


class SafeStateReader(Protocol):
    """Read side of the execution environment; every call reflects live state."""

    @property
    def chain_id(self) -> int:
        ...

    def get_safe(self, address: str) -> SafeState:
        ...

    def is_safe(self, address: str) -> bool:
        ...

    def is_hash_approved(self, owner_safe: str, approver: str, safe_tx_hash: bytes) -> bool:
        ...

    def approvers(self, owner_safe: str, safe_tx_hash: bytes) -> tuple[str, ...]:
        ...


class ExecutionEnvironment(SafeStateReader, Protocol):
    def exec_transaction(
        self,
        transaction: SafeTransaction,
        signatures: bytes,
        *,
        sender: str,
    ) -> ExecutionReceipt:
        ...

    def fork(self) -> ExecutionEnvironment:
        ...

    def discard(self) -> None:
        ...

    def apply_override(self, override: StateOverride) -> None:
        ...

    @property
    def accesses(self) -> Sequence[StateAccess]:
        ...
