from __future__ import annotations

from argparse import Namespace
from typing import Any

from eth_utils import to_hex

from nested_safe_builder.config import AppSettings
from nested_safe_builder.domain.call_batch import Call, CallBatch
from nested_safe_builder.domain.signing_payload import compile_signing_payload
from nested_safe_builder.evm.addresses import normalize_address
from nested_safe_builder.orchestration.hasher import build_safe_transaction
from nested_safe_builder.types import CommandResult, CommandStatus


def coerce_non_negative_int(raw_value: object, *, field_name: str) -> int:
    if isinstance(raw_value, bool):
        raise ValueError(f"{field_name} must be an integer")
    try:
        value = int(raw_value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{field_name} must be non-negative")
    return value


def parse_call_batch(raw_calls: Any) -> CallBatch:
    if isinstance(raw_calls, dict):
        raw_calls = raw_calls.get("calls")
    if not isinstance(raw_calls, list):
        raise ValueError("calls must be a JSON array of call objects")
    if not all(isinstance(raw, dict) for raw in raw_calls):
        raise ValueError("each call must be a JSON object")

    batch = CallBatch.of(Call.from_dict(raw) for raw in raw_calls)
    batch.ensure_canonical()
    return batch


def run_propose_hash(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        safe = normalize_address(str(getattr(args, "safe", "")), field_name="safe")
        nonce = coerce_non_negative_int(getattr(args, "nonce", None), field_name="nonce")
        raw_chain_id = getattr(args, "chain_id", None)
        chain_id = coerce_non_negative_int(
            settings.chain_id if raw_chain_id is None else raw_chain_id,
            field_name="chain_id",
        )
        batch = parse_call_batch(getattr(args, "calls", None))
        transaction = build_safe_transaction(
            safe,
            batch,
            nonce=nonce,
            chain_id=chain_id,
            multicall_address=settings.multicall_address,
        )
    except ValueError as exc:
        return CommandResult(
            command="propose-hash",
            status=CommandStatus.FAILED,
            details={"error": str(exc)},
        )

    payload = compile_signing_payload(transaction)
    return CommandResult(
        command="propose-hash",
        status=CommandStatus.PENDING,
        details={
            "signing_payload": payload.as_dict(),
            "safe_tx": {
                "to": transaction.to,
                "value": transaction.value,
                "data": to_hex(transaction.data),
                "operation": int(transaction.operation),
                "nonce": transaction.nonce,
            },
            "calls": batch.as_dict()["calls"],
            "total_value": batch.total_value(),
        },
    )
