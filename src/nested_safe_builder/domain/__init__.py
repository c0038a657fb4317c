"""Domain models for nested Safe approvals."""

from nested_safe_builder.domain.approval import ApprovalLedger, ApprovalRecord
from nested_safe_builder.domain.call_batch import Call, CallBatch
from nested_safe_builder.domain.safe import SafeState
from nested_safe_builder.domain.signing_payload import SigningPayload, compile_signing_payload

__all__ = [
    "ApprovalLedger",
    "ApprovalRecord",
    "Call",
    "CallBatch",
    "SafeState",
    "SigningPayload",
    "compile_signing_payload",
]
