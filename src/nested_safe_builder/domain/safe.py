from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from nested_safe_builder.evm.addresses import SENTINEL_ADDRESS, ZERO_ADDRESS, normalize_address


@dataclass(slots=True, frozen=True)
class SafeState:
    """Live view of a Safe: owners, threshold and the next nonce to execute."""

    address: str
    owners: tuple[str, ...]
    threshold: int
    nonce: int = 0

    @classmethod
    def create(
        cls,
        address: str,
        owners: Iterable[str],
        threshold: int,
        *,
        nonce: int = 0,
    ) -> SafeState:
        state = cls(
            address=normalize_address(address, field_name="safe"),
            owners=tuple(normalize_address(owner, field_name="owner") for owner in owners),
            threshold=threshold,
            nonce=nonce,
        )
        state.ensure_canonical()
        return state

    def ensure_canonical(self) -> None:
        if not self.owners:
            raise ValueError("safe must have at least one owner")
        if len(set(self.owners)) != len(self.owners):
            raise ValueError("safe owners must be unique")
        if ZERO_ADDRESS in self.owners or SENTINEL_ADDRESS in self.owners:
            raise ValueError("safe owners cannot be the zero or sentinel address")
        if self.address in self.owners:
            raise ValueError("safe cannot own itself")
        if not 1 <= self.threshold <= len(self.owners):
            raise ValueError("threshold must be between 1 and the number of owners")
        if self.nonce < 0:
            raise ValueError("nonce must be non-negative")

    def is_owner(self, address: str) -> bool:
        return address in self.owners

    def with_nonce(self, nonce: int) -> SafeState:
        return replace(self, nonce=nonce)

    def with_threshold(self, threshold: int) -> SafeState:
        updated = replace(self, threshold=threshold)
        updated.ensure_canonical()
        return updated

    def as_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "owners": list(self.owners),
            "threshold": self.threshold,
            "nonce": self.nonce,
        }
