"""Command handlers for the nested Safe builder CLI."""

from nested_safe_builder.commands.approval_payload import run_approval_payload
from nested_safe_builder.commands.encode_approvals import run_encode_approvals
from nested_safe_builder.commands.propose_hash import run_propose_hash
from nested_safe_builder.commands.sign_hash import run_sign_hash
from nested_safe_builder.commands.verify_approval import run_verify_approval

__all__ = [
    "run_approval_payload",
    "run_encode_approvals",
    "run_propose_hash",
    "run_sign_hash",
    "run_verify_approval",
]
