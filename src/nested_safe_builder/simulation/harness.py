"""Dry-run a Safe transaction on a disposable fork and gate it on a post-check."""
from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from eth_utils import to_hex

from nested_safe_builder.environment.base import ExecutionEnvironment
from nested_safe_builder.environment.contracts import AccessKind, StateAccess
from nested_safe_builder.environment.state import ExecutionReceipt, StateOverride
from nested_safe_builder.evm.addresses import ZERO_ADDRESS
from nested_safe_builder.evm.safe_tx import SafeTransaction
from nested_safe_builder.observability.logging import get_logger
from nested_safe_builder.orchestration.errors import ExecutionReverted, PostCheckFailed


@dataclass(slots=True, frozen=True)
class SimulationPayload:
    sender: str
    safe: str
    nonce: int
    safe_tx_hash: bytes
    to: str
    data: bytes
    signatures: bytes
    overrides: tuple[StateOverride, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "safe": self.safe,
            "nonce": self.nonce,
            "safe_tx_hash": to_hex(self.safe_tx_hash),
            "to": self.to,
            "data": to_hex(self.data),
            "signatures": to_hex(self.signatures),
            "overrides": [override.as_dict() for override in self.overrides],
        }


PostCheck = Callable[[Sequence[StateAccess], SimulationPayload], bool]


@dataclass(slots=True, frozen=True)
class SimulationReport:
    payload: SimulationPayload
    accesses: tuple[StateAccess, ...]
    receipt: ExecutionReceipt

    def writes(self) -> tuple[StateAccess, ...]:
        return tuple(
            access
            for access in self.accesses
            if access.kind == AccessKind.WRITE and not access.reverted
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "payload": self.payload.as_dict(),
            "accesses": [access.as_dict() for access in self.accesses],
            "results": [result.as_dict() for result in self.receipt.results],
        }


@contextmanager
def forked(env: ExecutionEnvironment) -> Iterator[ExecutionEnvironment]:
    fork = env.fork()
    try:
        yield fork
    finally:
        fork.discard()


def simulate(
    env: ExecutionEnvironment,
    transaction: SafeTransaction,
    signatures: bytes,
    post_check: PostCheck | None = None,
    *,
    sender: str = ZERO_ADDRESS,
    overrides: Sequence[StateOverride] = (),
) -> SimulationReport:
    """Execute ``transaction`` on a fork of ``env`` and evaluate ``post_check``.

    Raises PostCheckFailed when the simulated batch reverts or the predicate
    rejects the captured state accesses. Authorization failures propagate
    unchanged. The fork is discarded on every exit path.
    """
    logger = get_logger("simulation")
    safe_tx_hash = transaction.safe_tx_hash()
    payload = SimulationPayload(
        sender=sender,
        safe=transaction.safe,
        nonce=transaction.nonce,
        safe_tx_hash=safe_tx_hash,
        to=transaction.to,
        data=transaction.data,
        signatures=signatures,
        overrides=tuple(overrides),
    )
    log_context = {
        "safe": transaction.safe,
        "nonce": transaction.nonce,
        "safe_tx_hash": to_hex(safe_tx_hash),
    }

    with forked(env) as fork:
        for override in payload.overrides:
            fork.apply_override(override)

        try:
            receipt = fork.exec_transaction(transaction, signatures, sender=sender)
        except ExecutionReverted as exc:
            logger.warning("post_check_failed", **log_context, reason=exc.message)
            raise PostCheckFailed(f"simulated execution reverted: {exc.message}") from exc

        report = SimulationReport(payload=payload, accesses=receipt.accesses, receipt=receipt)
        passed = True if post_check is None else bool(post_check(report.accesses, payload))

    logger.info(
        "simulation_completed",
        **log_context,
        accesses=len(report.accesses),
        writes=len(report.writes()),
        passed=passed,
    )
    if not passed:
        logger.warning("post_check_failed", **log_context, reason="post-check predicate failed")
        raise PostCheckFailed(
            f"post-check rejected simulated state changes for {to_hex(safe_tx_hash)}"
        )
    return report
