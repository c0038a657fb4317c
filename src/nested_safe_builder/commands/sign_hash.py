from __future__ import annotations

from argparse import Namespace

from eth_account import Account

from nested_safe_builder.config import AppSettings
from nested_safe_builder.evm.addresses import parse_bytes32
from nested_safe_builder.evm.signatures import sign_safe_tx_hash
from nested_safe_builder.types import CommandResult, CommandStatus


def run_sign_hash(args: Namespace, settings: AppSettings) -> CommandResult:
    try:
        safe_tx_hash = parse_bytes32(str(getattr(args, "hash", "")), field_name="hash")
    except ValueError as exc:
        return CommandResult(
            command="sign-hash",
            status=CommandStatus.FAILED,
            details={"error": str(exc)},
        )

    if settings.signer_private_key is None:
        return CommandResult(
            command="sign-hash",
            status=CommandStatus.FAILED,
            details={"error": "SIGNER_PRIVATE_KEY is not configured"},
        )

    try:
        account = Account.from_key(settings.signer_private_key.get_secret_value())
    except ValueError:
        return CommandResult(
            command="sign-hash",
            status=CommandStatus.FAILED,
            details={"error": "SIGNER_PRIVATE_KEY is not a valid private key"},
        )

    signature = sign_safe_tx_hash(account, safe_tx_hash)
    return CommandResult(
        command="sign-hash",
        status=CommandStatus.PENDING,
        details={
            "signer": account.address,
            "hash": "0x" + safe_tx_hash.hex(),
            "signature": "0x" + signature.to_bytes().hex(),
        },
    )
