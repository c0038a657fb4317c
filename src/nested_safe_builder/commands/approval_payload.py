from __future__ import annotations

from argparse import Namespace

from nested_safe_builder.commands.propose_hash import coerce_non_negative_int
from nested_safe_builder.config import AppSettings
from nested_safe_builder.domain.signing_payload import compile_signing_payload
from nested_safe_builder.evm.addresses import normalize_address, parse_bytes32
from nested_safe_builder.orchestration.approval_collector import approval_batch
from nested_safe_builder.orchestration.hasher import build_safe_transaction
from nested_safe_builder.types import CommandResult, CommandStatus


def run_approval_payload(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        signer_safe = normalize_address(
            str(getattr(args, "signer_safe", "")), field_name="signer_safe"
        )
        signer_nonce = coerce_non_negative_int(getattr(args, "signer_nonce", None), field_name="signer_nonce")
        owner_safe = normalize_address(str(getattr(args, "owner_safe", "")), field_name="owner_safe")
        owner_hash = parse_bytes32(str(getattr(args, "owner_hash", "")), field_name="owner_hash")
        raw_chain_id = getattr(args, "chain_id", None)
        chain_id = coerce_non_negative_int(
            settings.chain_id if raw_chain_id is None else raw_chain_id,
            field_name="chain_id",
        )
        if signer_safe == owner_safe:
            raise ValueError("signer_safe must differ from owner_safe")

        transaction = build_safe_transaction(
            signer_safe,
            approval_batch(owner_safe, owner_hash),
            nonce=signer_nonce,
            chain_id=chain_id,
            multicall_address=settings.multicall_address,
        )
    except ValueError as exc:
        return CommandResult(
            command="approval-payload",
            status=CommandStatus.FAILED,
            details={"error": str(exc)},
        )

    return CommandResult(
        command="approval-payload",
        status=CommandStatus.PENDING,
        details={
            "owner_safe": owner_safe,
            "owner_hash": "0x" + owner_hash.hex(),
            "signing_payload": compile_signing_payload(transaction).as_dict(),
        },
    )
