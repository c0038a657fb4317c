import pytest
from eth_utils import to_checksum_address

from nested_safe_builder.domain.safe import SafeState

SAFE = to_checksum_address("0x" + "0a" * 20)
OWNER_1 = to_checksum_address("0x" + "01" * 20)
OWNER_2 = to_checksum_address("0x" + "02" * 20)


def test_create_normalizes_addresses() -> None:
    state = SafeState.create(SAFE.lower(), [OWNER_1.lower(), OWNER_2], 2)

    assert state.address == SAFE
    assert state.owners == (OWNER_1, OWNER_2)
    assert state.nonce == 0


@pytest.mark.parametrize("threshold", [0, 3])
def test_threshold_must_fit_owner_count(threshold: int) -> None:
    with pytest.raises(ValueError, match="threshold must be between"):
        SafeState.create(SAFE, [OWNER_1, OWNER_2], threshold)


def test_owners_must_be_unique() -> None:
    with pytest.raises(ValueError, match="unique"):
        SafeState.create(SAFE, [OWNER_1, OWNER_1.lower()], 1)


def test_safe_cannot_own_itself() -> None:
    with pytest.raises(ValueError, match="cannot own itself"):
        SafeState.create(SAFE, [SAFE, OWNER_1], 1)


def test_safe_needs_an_owner() -> None:
    with pytest.raises(ValueError, match="at least one owner"):
        SafeState.create(SAFE, [], 1)


def test_with_threshold_revalidates() -> None:
    state = SafeState.create(SAFE, [OWNER_1, OWNER_2], 1)

    assert state.with_threshold(2).threshold == 2
    with pytest.raises(ValueError):
        state.with_threshold(3)


def test_as_dict_lists_owners() -> None:
    state = SafeState.create(SAFE, [OWNER_1], 1, nonce=4)

    assert state.as_dict() == {"address": SAFE, "owners": [OWNER_1], "threshold": 1, "nonce": 4}


@pytest.mark.parametrize(
    "reserved",
    [
        "0x0000000000000000000000000000000000000000",
        "0x0000000000000000000000000000000000000001",
    ],
)
def test_zero_and_sentinel_cannot_be_owners(reserved: str) -> None:
    with pytest.raises(ValueError, match="zero or sentinel"):
        SafeState.create(SAFE, [OWNER_1, reserved], 1)
