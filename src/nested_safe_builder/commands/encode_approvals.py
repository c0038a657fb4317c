from __future__ import annotations

from argparse import Namespace

from nested_safe_builder.commands.verify_approval import parse_address_list
from nested_safe_builder.config import AppSettings
from nested_safe_builder.evm.addresses import address_sort_key
from nested_safe_builder.orchestration.execution import encode_approval_signatures
from nested_safe_builder.types import CommandResult, CommandStatus


def run_encode_approvals(args: Namespace, _: AppSettings) -> CommandResult:
    try:
        approvers = parse_address_list(getattr(args, "approvers", ""), field_name="approvers")
    except ValueError as exc:
        return CommandResult(
            command="encode-approvals",
            status=CommandStatus.FAILED,
            details={"error": str(exc)},
        )

    return CommandResult(
        command="encode-approvals",
        status=CommandStatus.READY,
        details={
            "approvers": sorted(approvers, key=address_sort_key),
            "signatures": "0x" + encode_approval_signatures(approvers).hex(),
        },
    )
