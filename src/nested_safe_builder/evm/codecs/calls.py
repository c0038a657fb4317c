"""Calldata codecs for the calls a nested Safe batch is made of."""
from __future__ import annotations

from collections.abc import Sequence

from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address

MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"

AGGREGATE3_VALUE_SIGNATURE = "aggregate3Value((address,bool,uint256,bytes)[])"
APPROVE_HASH_SIGNATURE = "approveHash(bytes32)"

CALL3_VALUE_TYPE = "(address,bool,uint256,bytes)[]"

Call3Value = tuple[str, bool, int, bytes]


def function_selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def argument_types(signature: str) -> tuple[str, ...]:
    inner = signature[signature.index("(") + 1 : signature.rindex(")")]
    return tuple(part for part in inner.split(",") if part)


AGGREGATE3_VALUE_SELECTOR = function_selector(AGGREGATE3_VALUE_SIGNATURE)
APPROVE_HASH_SELECTOR = function_selector(APPROVE_HASH_SIGNATURE)


def encode_aggregate3_value(calls: Sequence[Call3Value]) -> bytes:
    return AGGREGATE3_VALUE_SELECTOR + encode([CALL3_VALUE_TYPE], [list(calls)])


def decode_aggregate3_value(data: bytes) -> list[Call3Value]:
    if bytes(data[:4]) != AGGREGATE3_VALUE_SELECTOR:
        raise ValueError("calldata is not an aggregate3Value call")

    (raw_calls,) = decode([CALL3_VALUE_TYPE], bytes(data[4:]))
    return [
        (to_checksum_address(target), bool(allow_failure), int(value), bytes(call_data))
        for target, allow_failure, value, call_data in raw_calls
    ]


def encode_approve_hash(safe_tx_hash: bytes) -> bytes:
    if len(safe_tx_hash) != 32:
        raise ValueError("safe_tx_hash must be 32 bytes")
    return APPROVE_HASH_SELECTOR + encode(["bytes32"], [safe_tx_hash])


def decode_approve_hash(data: bytes) -> bytes:
    if bytes(data[:4]) != APPROVE_HASH_SELECTOR:
        raise ValueError("calldata is not an approveHash call")

    (safe_tx_hash,) = decode(["bytes32"], bytes(data[4:]))
    return bytes(safe_tx_hash)
