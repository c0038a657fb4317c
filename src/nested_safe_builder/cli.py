from __future__ import annotations

import json
from argparse import ArgumentParser, Namespace
from collections.abc import Callable, Sequence

from nested_safe_builder.commands import (
    run_approval_payload,
    run_encode_approvals,
    run_propose_hash,
    run_sign_hash,
    run_verify_approval,
)
from nested_safe_builder.config import AppSettings, get_settings
from nested_safe_builder.observability.logging import configure_logging
from nested_safe_builder.types import CommandResult, CommandStatus

CommandHandler = Callable[[Namespace, AppSettings], CommandResult]

COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "propose-hash": run_propose_hash,
    "approval-payload": run_approval_payload,
    "sign-hash": run_sign_hash,
    "verify-approval": run_verify_approval,
    "encode-approvals": run_encode_approvals,
}


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="nested-safe-builder", description="Nested Safe signing tooling")
    parser.add_argument("--json", action="store_true", help="emit machine-readable JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    propose = subparsers.add_parser("propose-hash")
    propose.add_argument("--safe", required=True)
    propose.add_argument("--nonce", required=True, type=int)
    propose.add_argument("--calls", required=True, type=json.loads)
    propose.add_argument("--chain-id", type=int, default=None)

    payload = subparsers.add_parser("approval-payload")
    payload.add_argument("--signer-safe", required=True)
    payload.add_argument("--signer-nonce", required=True, type=int)
    payload.add_argument("--owner-safe", required=True)
    payload.add_argument("--owner-hash", required=True)
    payload.add_argument("--chain-id", type=int, default=None)

    sign = subparsers.add_parser("sign-hash")
    sign.add_argument("--hash", required=True)

    verify = subparsers.add_parser("verify-approval")
    verify.add_argument("--hash", required=True)
    verify.add_argument("--owners", required=True, help="comma-separated owner addresses")
    verify.add_argument("--threshold", required=True, type=int)
    verify.add_argument("--signatures", required=True, help="packed 65-byte signatures, hex")

    encode = subparsers.add_parser("encode-approvals")
    encode.add_argument("--approvers", required=True, help="comma-separated approver addresses")

    return parser


def _emit_result(result: CommandResult, *, as_json: bool) -> None:
    if as_json:
        print(result.to_json())
        return

    print(f"{result.command}: {result.status.value}")
    if result.details:
        print(json.dumps(result.details, indent=2, sort_keys=True))


def entrypoint(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    settings = get_settings()
    configure_logging(settings.log_level)

    handler = COMMAND_HANDLERS[str(args.command)]
    result = handler(args, settings)
    _emit_result(result, as_json=bool(args.json))
    return 1 if result.status == CommandStatus.FAILED else 0


if __name__ == "__main__":
    raise SystemExit(entrypoint())
