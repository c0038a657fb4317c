from __future__ import annotations

from collections.abc import Iterable

from eth_utils import to_hex

from nested_safe_builder.domain.call_batch import CallBatch
from nested_safe_builder.environment.base import ExecutionEnvironment
from nested_safe_builder.environment.state import ExecutionReceipt
from nested_safe_builder.evm.addresses import ZERO_ADDRESS
from nested_safe_builder.evm.codecs.calls import MULTICALL3_ADDRESS
from nested_safe_builder.evm.signatures import approved_hash_signature, pack_signatures
from nested_safe_builder.observability.logging import get_logger
from nested_safe_builder.orchestration.authorization import approval_status
from nested_safe_builder.orchestration.errors import NotEnoughApprovals, ReplayRejected
from nested_safe_builder.orchestration.hasher import build_safe_transaction
from nested_safe_builder.simulation.harness import PostCheck, simulate


def encode_approval_signatures(approvers: Iterable[str]) -> bytes:
    """Pre-validated signatures for owners that approved on-chain, ascending by address."""
    return pack_signatures({approver: approved_hash_signature(approver) for approver in approvers})


def run(
    env: ExecutionEnvironment,
    owner_safe: str,
    batch: CallBatch,
    *,
    nonce: int | None = None,
    post_check: PostCheck | None = None,
    sender: str = ZERO_ADDRESS,
    multicall_address: str = MULTICALL3_ADDRESS,
) -> ExecutionReceipt:
    """Execute ``batch`` on ``owner_safe`` once enough owner Safes approved it.

    ``nonce`` pins the batch to the nonce its approvals were collected for;
    once the Safe has moved past it the call fails with ReplayRejected. The
    batch is always simulated first and only committed if the simulation
    passes ``post_check``.
    """
    logger = get_logger("execution")
    owner = env.get_safe(owner_safe)
    bound_nonce = owner.nonce if nonce is None else nonce
    if bound_nonce != owner.nonce:
        logger.warning(
            "execution_rejected",
            safe=owner.address,
            nonce=bound_nonce,
            reason="stale nonce",
        )
        raise ReplayRejected(
            f"stale nonce: batch bound to nonce {bound_nonce}, safe {owner.address} "
            f"is at nonce {owner.nonce}"
        )

    transaction = build_safe_transaction(
        owner.address,
        batch,
        nonce=bound_nonce,
        chain_id=env.chain_id,
        multicall_address=multicall_address,
    )
    safe_tx_hash = transaction.safe_tx_hash()
    status = approval_status(env, owner.address, safe_tx_hash)
    if not status.ready:
        logger.warning(
            "execution_rejected",
            safe=owner.address,
            nonce=bound_nonce,
            safe_tx_hash=to_hex(safe_tx_hash),
            approvals=len(status.approvers),
            threshold=status.threshold,
        )
        raise NotEnoughApprovals(
            f"not enough approvals: {len(status.approvers)} of {status.threshold} "
            f"owner safes approved {to_hex(safe_tx_hash)}"
        )

    signatures = encode_approval_signatures(status.approvers)
    simulate(env, transaction, signatures, post_check, sender=sender)

    receipt = env.exec_transaction(transaction, signatures, sender=sender)
    logger.info(
        "batch_executed",
        safe=receipt.safe,
        nonce=receipt.nonce,
        safe_tx_hash=to_hex(receipt.safe_tx_hash),
        approvers=list(receipt.signers),
        calls=len(receipt.results),
    )
    return receipt
