from __future__ import annotations

from eth_utils import is_address, is_hexstr, to_bytes, to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
SENTINEL_ADDRESS = "0x0000000000000000000000000000000000000001"


def normalize_address(raw_value: str, *, field_name: str) -> str:
    candidate = raw_value.strip()
    if not candidate:
        raise ValueError(f"{field_name} is required")

    if not is_address(candidate):
        raise ValueError(f"{field_name} must be a valid EVM address")
    return to_checksum_address(candidate)


def parse_bytes32(raw_value: str, *, field_name: str) -> bytes:
    candidate = raw_value.strip()
    if not candidate:
        raise ValueError(f"{field_name} is required")

    if not is_hexstr(candidate):
        raise ValueError(f"{field_name} must be hex encoded")
    value = to_bytes(hexstr=candidate)
    if len(value) != 32:
        raise ValueError(f"{field_name} must be 32 bytes")
    return value


def address_sort_key(address: str) -> int:
    return int(address, 16)
