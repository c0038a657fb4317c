from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from eth_utils import to_bytes, to_hex

from nested_safe_builder.evm.addresses import normalize_address
from nested_safe_builder.evm.codecs.calls import Call3Value, encode_aggregate3_value


@dataclass(slots=True, frozen=True)
class Call:
    target: str
    data: bytes = b""
    value: int = 0
    allow_failure: bool = False

    def ensure_canonical(self) -> None:
        if normalize_address(self.target, field_name="target") != self.target:
            raise ValueError("target must be a checksummed address")
        if self.value < 0:
            raise ValueError("value must be non-negative")

    def as_call3_value(self) -> Call3Value:
        self.ensure_canonical()
        return (self.target, self.allow_failure, self.value, bytes(self.data))

    def as_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "data": to_hex(self.data),
            "value": self.value,
            "allow_failure": self.allow_failure,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Call:
        target = raw.get("target")
        if not isinstance(target, str):
            raise ValueError("call target is required")

        data_raw = raw.get("data", "0x")
        if not isinstance(data_raw, str):
            raise ValueError("call data must be a hex string")

        value_raw = raw.get("value", 0)
        if isinstance(value_raw, bool) or not isinstance(value_raw, int):
            raise ValueError("call value must be an integer")

        allow_failure = raw.get("allow_failure", False)
        if not isinstance(allow_failure, bool):
            raise ValueError("allow_failure must be a boolean")

        return cls(
            target=normalize_address(target, field_name="target"),
            data=to_bytes(hexstr=data_raw),
            value=value_raw,
            allow_failure=allow_failure,
        )


@dataclass(slots=True, frozen=True)
class CallBatch:
    """Ordered calls applied atomically; a failing call without allow_failure fails the batch."""

    calls: tuple[Call, ...]

    @classmethod
    def of(cls, calls: Iterable[Call]) -> CallBatch:
        return cls(calls=tuple(calls))

    def ensure_canonical(self) -> None:
        if not self.calls:
            raise ValueError("call batch must contain at least one call")
        for call in self.calls:
            call.ensure_canonical()

    def total_value(self) -> int:
        return sum(call.value for call in self.calls)

    def encode(self) -> bytes:
        self.ensure_canonical()
        return encode_aggregate3_value([call.as_call3_value() for call in self.calls])

    def as_dict(self) -> dict[str, Any]:
        return {"calls": [call.as_dict() for call in self.calls]}
