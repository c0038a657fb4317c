"""Per-intermediate-Safe approval of an owner Safe transaction hash.

An intermediate Safe approves by executing a Safe transaction of its own whose
single call is ``ownerSafe.approveHash(ownerHash)``. Its members therefore sign
the signing payload of that approval transaction, bound to the intermediate
Safe's nonce, not the owner hash directly.
"""
from __future__ import annotations

from collections.abc import Sequence

from eth_account.signers.local import LocalAccount
from eth_utils import to_hex

from nested_safe_builder.domain.approval import ApprovalRecord
from nested_safe_builder.domain.call_batch import Call, CallBatch
from nested_safe_builder.domain.signing_payload import SigningPayload, compile_signing_payload
from nested_safe_builder.environment.base import ExecutionEnvironment, SafeStateReader
from nested_safe_builder.evm.addresses import ZERO_ADDRESS
from nested_safe_builder.evm.codecs.calls import MULTICALL3_ADDRESS, encode_approve_hash
from nested_safe_builder.evm.safe_tx import SafeTransaction
from nested_safe_builder.evm.signatures import (
    SafeSignature,
    collect_valid_signers,
    pack_signatures,
    recover_signer,
    sign_safe_tx_hash,
    split_signatures,
)
from nested_safe_builder.observability.logging import get_logger
from nested_safe_builder.orchestration.errors import InsufficientSignatures, NotAnOwner
from nested_safe_builder.orchestration.hasher import build_safe_transaction

SignatureInput = bytes | Sequence[SafeSignature]


def approval_batch(owner_safe: str, owner_hash: bytes) -> CallBatch:
    return CallBatch.of([Call(target=owner_safe, data=encode_approve_hash(owner_hash))])


def approval_transaction(
    reader: SafeStateReader,
    signer_safe: str,
    owner_safe: str,
    owner_hash: bytes,
    *,
    multicall_address: str = MULTICALL3_ADDRESS,
) -> SafeTransaction:
    signer = reader.get_safe(signer_safe)
    owner = reader.get_safe(owner_safe)
    if not owner.is_owner(signer.address):
        raise NotAnOwner(f"safe {signer.address} is not an owner of {owner.address}")

    return build_safe_transaction(
        signer.address,
        approval_batch(owner.address, owner_hash),
        nonce=signer.nonce,
        chain_id=reader.chain_id,
        multicall_address=multicall_address,
    )


def approval_payload(
    reader: SafeStateReader,
    signer_safe: str,
    owner_safe: str,
    owner_hash: bytes,
    *,
    multicall_address: str = MULTICALL3_ADDRESS,
) -> SigningPayload:
    """The exact payload members of ``signer_safe`` sign to approve ``owner_hash``."""
    return compile_signing_payload(
        approval_transaction(
            reader,
            signer_safe,
            owner_safe,
            owner_hash,
            multicall_address=multicall_address,
        )
    )


def sign(account: LocalAccount, payload: SigningPayload) -> SafeSignature:
    return sign_safe_tx_hash(account, payload.safe_tx_hash)


def _as_signature_list(signatures: SignatureInput) -> list[SafeSignature]:
    if isinstance(signatures, (bytes, bytearray)):
        try:
            return split_signatures(bytes(signatures))
        except ValueError as exc:
            raise InsufficientSignatures(f"malformed signatures: {exc}") from exc
    return list(signatures)


def approve(
    env: ExecutionEnvironment,
    signer_safe: str,
    owner_safe: str,
    owner_hash: bytes,
    signatures: SignatureInput,
    *,
    sender: str = ZERO_ADDRESS,
    multicall_address: str = MULTICALL3_ADDRESS,
) -> ApprovalRecord:
    """Record ``signer_safe``'s approval of ``owner_hash`` on ``owner_safe``.

    Re-approving an already-approved pair is a no-op returning the existing
    record. A failed attempt leaves no approval and does not touch the nonce.
    """
    logger = get_logger("approval_collector")
    transaction = approval_transaction(
        env,
        signer_safe,
        owner_safe,
        owner_hash,
        multicall_address=multicall_address,
    )
    owner_address = env.get_safe(owner_safe).address
    log_context = {
        "safe": transaction.safe,
        "owner_safe": owner_address,
        "safe_tx_hash": to_hex(owner_hash),
    }

    if env.is_hash_approved(owner_address, transaction.safe, owner_hash):
        logger.info("approval_already_recorded", **log_context)
        return ApprovalRecord(
            owner_safe=owner_address,
            approver=transaction.safe,
            safe_tx_hash=owner_hash,
        )

    signer = env.get_safe(transaction.safe)
    approval_hash = transaction.safe_tx_hash()
    signature_list = _as_signature_list(signatures)
    signers = collect_valid_signers(
        approval_hash,
        signature_list,
        owners=signer.owners,
        is_hash_approved=lambda member: env.is_hash_approved(signer.address, member, approval_hash),
        sender=sender,
    )
    if len(signers) < signer.threshold:
        logger.warning(
            "approval_rejected",
            **log_context,
            nonce=signer.nonce,
            valid_signers=len(signers),
            threshold=signer.threshold,
        )
        raise InsufficientSignatures(
            f"insufficient signatures: {len(signers)} of {signer.threshold} "
            f"required for safe {signer.address}"
        )

    by_signer: dict[str, SafeSignature] = {}
    for signature in signature_list:
        member = recover_signer(approval_hash, signature)
        if member in signers and member not in by_signer:
            by_signer[member] = signature

    receipt = env.exec_transaction(transaction, pack_signatures(by_signer), sender=sender)
    logger.info(
        "approval_recorded",
        **log_context,
        nonce=receipt.nonce,
        signers=list(receipt.signers),
    )
    return ApprovalRecord(owner_safe=owner_address, approver=transaction.safe, safe_tx_hash=owner_hash)
