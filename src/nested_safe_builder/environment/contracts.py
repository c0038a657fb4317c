from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from nested_safe_builder.evm.codecs.calls import argument_types, function_selector

if TYPE_CHECKING:
    from nested_safe_builder.environment.state import InMemoryEnvironment

F = TypeVar("F", bound=Callable[..., Any])


class AccessKind(StrEnum):
    READ = "read"
    WRITE = "write"


@dataclass(slots=True, frozen=True)
class StateAccess:
    account: str
    slot: str
    kind: AccessKind
    previous_value: int
    new_value: int
    reverted: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "slot": self.slot,
            "kind": self.kind.value,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "reverted": self.reverted,
        }


class CallReverted(Exception):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


@dataclass(slots=True)
class CallContext:
    env: InMemoryEnvironment
    address: str
    sender: str
    value: int

    def sload(self, slot: str) -> int:
        return self.env.load_storage(self.address, slot)

    def sstore(self, slot: str, value: int) -> None:
        self.env.store(self.address, slot, value)

    def require(self, condition: bool, reason: str) -> None:
        if not condition:
            raise CallReverted(reason)


def external(signature: str) -> Callable[[F], F]:
    """Expose a contract method under the given ABI function signature."""

    def decorator(func: F) -> F:
        func.__abi_signature__ = signature  # type: ignore[attr-defined]
        return func

    return decorator


class Contract:
    """In-memory contract code; its state lives in the environment's storage."""

    _dispatch: ClassVar[dict[bytes, tuple[str, tuple[str, ...]]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        dispatch = dict(cls._dispatch)
        for name, member in vars(cls).items():
            signature = getattr(member, "__abi_signature__", None)
            if signature is None:
                continue
            dispatch[function_selector(signature)] = (name, argument_types(signature))
        cls._dispatch = dispatch

    def handle(self, ctx: CallContext, data: bytes) -> bytes:
        entry = self._dispatch.get(bytes(data[:4]))
        if entry is None:
            raise CallReverted(f"unknown function selector 0x{bytes(data[:4]).hex()}")

        name, arg_types = entry
        try:
            args = decode(list(arg_types), bytes(data[4:])) if arg_types else ()
        except DecodingError as exc:
            raise CallReverted(f"malformed calldata for {name}: {exc}") from exc

        # a fault in contract code reverts the call like an EVM panic
        try:
            result = getattr(self, name)(ctx, *args)
        except CallReverted:
            raise
        except Exception as exc:
            raise CallReverted(f"{name} panicked: {type(exc).__name__}: {exc}") from exc
        return result if isinstance(result, bytes) else b""
