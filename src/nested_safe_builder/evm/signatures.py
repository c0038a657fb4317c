"""Safe signature blobs: signing, recovery and threshold counting."""
from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from eth_account.signers.local import LocalAccount
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak, to_checksum_address

from nested_safe_builder.evm.addresses import address_sort_key

SIGNATURE_LENGTH = 65
APPROVED_HASH_V = 1
ETH_SIGN_V_OFFSET = 4

ETH_SIGN_PREFIX = b"\x19Ethereum Signed Message:\n32"


@dataclass(slots=True, frozen=True)
class SafeSignature:
    r: int
    s: int
    v: int

    def to_bytes(self) -> bytes:
        return (
            self.r.to_bytes(32, byteorder="big")
            + self.s.to_bytes(32, byteorder="big")
            + bytes([self.v])
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> SafeSignature:
        if len(raw) != SIGNATURE_LENGTH:
            raise ValueError(f"signature must be {SIGNATURE_LENGTH} bytes")
        return cls(
            r=int.from_bytes(raw[:32], byteorder="big"),
            s=int.from_bytes(raw[32:64], byteorder="big"),
            v=raw[64],
        )

    @property
    def is_approved_hash(self) -> bool:
        return self.v == APPROVED_HASH_V


def approved_hash_signature(owner: str) -> SafeSignature:
    """Pre-validated marker: the owner approved the hash on-chain or is the sender."""
    return SafeSignature(r=int(owner, 16), s=0, v=APPROVED_HASH_V)


def sign_safe_tx_hash(account: LocalAccount, safe_tx_hash: bytes) -> SafeSignature:
    signed = account.unsafe_sign_hash(safe_tx_hash)
    return SafeSignature(r=signed.r, s=signed.s, v=signed.v)


def split_signatures(blob: bytes) -> list[SafeSignature]:
    if len(blob) % SIGNATURE_LENGTH != 0:
        raise ValueError(f"signature blob length must be a multiple of {SIGNATURE_LENGTH}")
    return [
        SafeSignature.from_bytes(blob[offset : offset + SIGNATURE_LENGTH])
        for offset in range(0, len(blob), SIGNATURE_LENGTH)
    ]


def pack_signatures(signatures: Mapping[str, SafeSignature]) -> bytes:
    ordered = sorted(signatures.items(), key=lambda item: address_sort_key(item[0]))
    return b"".join(signature.to_bytes() for _, signature in ordered)


def _recover(message_hash: bytes, v: int, r: int, s: int) -> str | None:
    try:
        signature = keys.Signature(vrs=(v, r, s))
        public_key = signature.recover_public_key_from_msg_hash(message_hash)
    except (BadSignature, ValidationError):
        return None
    return public_key.to_checksum_address()


def recover_signer(safe_tx_hash: bytes, signature: SafeSignature) -> str | None:
    """Return the address a signature attributes to, or None if unrecoverable.

    Approved-hash markers are returned as the encoded owner; whether the
    approval actually exists is the caller's concern.
    """
    if signature.is_approved_hash:
        if signature.r >> 160:
            return None
        return to_checksum_address(signature.r.to_bytes(20, byteorder="big"))

    if signature.v > 30:
        prefixed = keccak(ETH_SIGN_PREFIX + safe_tx_hash)
        return _recover(prefixed, signature.v - ETH_SIGN_V_OFFSET - 27, signature.r, signature.s)

    if signature.v in (27, 28):
        return _recover(safe_tx_hash, signature.v - 27, signature.r, signature.s)

    return None


def collect_valid_signers(
    safe_tx_hash: bytes,
    signatures: Iterable[SafeSignature],
    *,
    owners: Iterable[str],
    is_hash_approved: Callable[[str], bool],
    sender: str | None = None,
) -> tuple[str, ...]:
    """Distinct current owners with a valid signature over ``safe_tx_hash``.

    Signatures from non-owners, unrecoverable signatures and approved-hash
    markers without a matching approval are ignored. Repeats of the same owner
    count once.
    """
    owner_set = frozenset(owners)
    signers: list[str] = []
    for signature in signatures:
        signer = recover_signer(safe_tx_hash, signature)
        if signer is None or signer not in owner_set or signer in signers:
            continue
        if signature.is_approved_hash and signer != sender and not is_hash_approved(signer):
            continue
        signers.append(signer)
    return tuple(signers)
