from __future__ import annotations

from argparse import Namespace

from eth_utils import is_hexstr, to_bytes

from nested_safe_builder.commands.propose_hash import coerce_non_negative_int
from nested_safe_builder.config import AppSettings
from nested_safe_builder.evm.addresses import normalize_address, parse_bytes32
from nested_safe_builder.evm.signatures import collect_valid_signers, split_signatures
from nested_safe_builder.orchestration.errors import InsufficientSignatures
from nested_safe_builder.types import CommandResult, CommandStatus


def parse_address_list(raw_value: object, *, field_name: str) -> tuple[str, ...]:
    parts = [part for part in str(raw_value or "").split(",") if part.strip()]
    if not parts:
        raise ValueError(f"{field_name} is required")
    addresses = tuple(normalize_address(part, field_name=field_name) for part in parts)
    if len(set(addresses)) != len(addresses):
        raise ValueError(f"{field_name} must not contain duplicates")
    return addresses


def run_verify_approval(args: Namespace, _: AppSettings) -> CommandResult:
    try:
        safe_tx_hash = parse_bytes32(str(getattr(args, "hash", "")), field_name="hash")
        owners = parse_address_list(getattr(args, "owners", ""), field_name="owners")
        threshold = coerce_non_negative_int(getattr(args, "threshold", None), field_name="threshold")
        if not 1 <= threshold <= len(owners):
            raise ValueError("threshold must be between 1 and the number of owners")

        raw_signatures = str(getattr(args, "signatures", "")).strip()
        if not is_hexstr(raw_signatures):
            raise ValueError("signatures must be hex encoded")
        signatures = split_signatures(to_bytes(hexstr=raw_signatures))
    except ValueError as exc:
        return CommandResult(
            command="verify-approval",
            status=CommandStatus.FAILED,
            details={"error": str(exc)},
        )

    # approved-hash markers need on-chain state and never count offline
    signers = collect_valid_signers(
        safe_tx_hash,
        signatures,
        owners=owners,
        is_hash_approved=lambda _: False,
    )
    details = {
        "hash": "0x" + safe_tx_hash.hex(),
        "threshold": threshold,
        "signers": list(signers),
    }
    if len(signers) < threshold:
        failure = InsufficientSignatures(
            f"insufficient signatures: {len(signers)} of {threshold} required"
        )
        return CommandResult(
            command="verify-approval",
            status=CommandStatus.FAILED,
            details={**details, "reason": failure.message, "kind": failure.kind},
        )

    return CommandResult(command="verify-approval", status=CommandStatus.APPROVED, details=details)
