import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from nested_safe_builder.evm.signatures import (
    SafeSignature,
    approved_hash_signature,
    collect_valid_signers,
    pack_signatures,
    recover_signer,
    sign_safe_tx_hash,
    split_signatures,
)

SAFE_TX_HASH = bytes(range(32))


def _never_approved(_: str) -> bool:
    return False


def test_signature_round_trips_through_bytes(members: dict[str, LocalAccount]) -> None:
    signature = sign_safe_tx_hash(members["w1"], SAFE_TX_HASH)

    raw = signature.to_bytes()

    assert len(raw) == 65
    assert raw[64] in (27, 28)
    assert SafeSignature.from_bytes(raw) == signature


def test_recover_signer_for_ecdsa_signature(members: dict[str, LocalAccount]) -> None:
    signature = sign_safe_tx_hash(members["w1"], SAFE_TX_HASH)

    assert recover_signer(SAFE_TX_HASH, signature) == members["w1"].address
    assert recover_signer(b"\xff" * 32, signature) != members["w1"].address


def test_recover_signer_for_eth_sign_signature(members: dict[str, LocalAccount]) -> None:
    signed = Account.sign_message(encode_defunct(primitive=SAFE_TX_HASH), members["w2"].key)
    signature = SafeSignature(r=signed.r, s=signed.s, v=signed.v + 4)

    assert recover_signer(SAFE_TX_HASH, signature) == members["w2"].address


def test_approved_hash_marker_encodes_owner(members: dict[str, LocalAccount]) -> None:
    marker = approved_hash_signature(members["w3"].address)

    assert marker.is_approved_hash
    assert marker.s == 0
    assert recover_signer(SAFE_TX_HASH, marker) == members["w3"].address


def test_unsupported_v_is_unrecoverable() -> None:
    assert recover_signer(SAFE_TX_HASH, SafeSignature(r=1, s=1, v=5)) is None


def test_split_rejects_truncated_blob() -> None:
    with pytest.raises(ValueError, match="multiple of 65"):
        split_signatures(b"\x00" * 64)


def test_pack_orders_by_signer_address(members: dict[str, LocalAccount]) -> None:
    signatures = {
        account.address: sign_safe_tx_hash(account, SAFE_TX_HASH)
        for account in members.values()
    }

    packed = split_signatures(pack_signatures(signatures))

    recovered = [recover_signer(SAFE_TX_HASH, signature) for signature in packed]
    assert recovered == sorted(signatures, key=lambda address: int(address, 16))


def test_collect_counts_each_owner_once(members: dict[str, LocalAccount]) -> None:
    w1, w2 = members["w1"], members["w2"]
    signature = sign_safe_tx_hash(w1, SAFE_TX_HASH)

    signers = collect_valid_signers(
        SAFE_TX_HASH,
        [signature, signature],
        owners=[w1.address, w2.address],
        is_hash_approved=_never_approved,
    )

    assert signers == (w1.address,)


def test_collect_ignores_non_owner_signatures(members: dict[str, LocalAccount]) -> None:
    signers = collect_valid_signers(
        SAFE_TX_HASH,
        [
            sign_safe_tx_hash(members["outsider"], SAFE_TX_HASH),
            sign_safe_tx_hash(members["w1"], SAFE_TX_HASH),
        ],
        owners=[members["w1"].address],
        is_hash_approved=_never_approved,
    )

    assert signers == (members["w1"].address,)


def test_collect_counts_marker_only_when_approved_or_sender(members: dict[str, LocalAccount]) -> None:
    owner = members["w1"].address
    marker = approved_hash_signature(owner)

    unapproved = collect_valid_signers(
        SAFE_TX_HASH, [marker], owners=[owner], is_hash_approved=_never_approved
    )
    approved = collect_valid_signers(
        SAFE_TX_HASH, [marker], owners=[owner], is_hash_approved=lambda _: True
    )
    as_sender = collect_valid_signers(
        SAFE_TX_HASH, [marker], owners=[owner], is_hash_approved=_never_approved, sender=owner
    )

    assert unapproved == ()
    assert approved == (owner,)
    assert as_sender == (owner,)
