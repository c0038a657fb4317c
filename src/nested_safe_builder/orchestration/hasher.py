from __future__ import annotations

from nested_safe_builder.domain.call_batch import CallBatch
from nested_safe_builder.domain.signing_payload import SigningPayload, compile_signing_payload
from nested_safe_builder.environment.base import SafeStateReader
from nested_safe_builder.evm.codecs.calls import MULTICALL3_ADDRESS
from nested_safe_builder.evm.safe_tx import SafeTransaction
from nested_safe_builder.observability.logging import get_logger
from nested_safe_builder.types import Operation


def build_safe_transaction(
    safe: str,
    batch: CallBatch,
    *,
    nonce: int,
    chain_id: int,
    multicall_address: str = MULTICALL3_ADDRESS,
) -> SafeTransaction:
    """Wrap a call batch into the Safe transaction that executes it.

    The batch is delegatecalled into Multicall3 so each call originates from
    the Safe itself.
    """
    if nonce < 0:
        raise ValueError("nonce must be non-negative")
    if chain_id <= 0:
        raise ValueError("chain_id must be positive")

    return SafeTransaction(
        safe=safe,
        chain_id=chain_id,
        to=multicall_address,
        value=0,
        data=batch.encode(),
        operation=Operation.DELEGATECALL,
        nonce=nonce,
    )


def propose_hash(
    reader: SafeStateReader,
    safe: str,
    batch: CallBatch,
    *,
    nonce: int | None = None,
    multicall_address: str = MULTICALL3_ADDRESS,
) -> SigningPayload:
    """Signing payload for ``batch`` on ``safe`` at its current (or a given) nonce."""
    state = reader.get_safe(safe)
    transaction = build_safe_transaction(
        state.address,
        batch,
        nonce=state.nonce if nonce is None else nonce,
        chain_id=reader.chain_id,
        multicall_address=multicall_address,
    )
    payload = compile_signing_payload(transaction)
    get_logger("hasher").info(
        "safe_tx_proposed",
        safe=payload.safe,
        nonce=payload.nonce,
        safe_tx_hash=payload.as_dict()["safe_tx_hash"],
        calls=len(batch.calls),
        value=batch.total_value(),
    )
    return payload
