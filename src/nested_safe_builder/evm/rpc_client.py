from __future__ import annotations

from typing import Any

from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from nested_safe_builder.config import AppSettings
from nested_safe_builder.domain.safe import SafeState
from nested_safe_builder.evm.addresses import address_sort_key, normalize_address
from nested_safe_builder.orchestration.errors import UnknownSafe

SAFE_READ_ABI: list[dict[str, Any]] = [
    {
        "inputs": [],
        "name": "getOwners",
        "outputs": [{"internalType": "address[]", "name": "", "type": "address[]"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getThreshold",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "nonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "", "type": "address"},
            {"internalType": "bytes32", "name": "", "type": "bytes32"},
        ],
        "name": "approvedHashes",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class RpcClientFactory:
    """Thin factory for Web3 to keep reader construction deterministic."""

    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings

    def create(self) -> Web3:
        return Web3(Web3.HTTPProvider(self._settings.rpc_url))


class OnchainSafeReader:
    """SafeStateReader over a live node; every call hits the chain."""

    def __init__(self, w3: Web3, *, chain_id: int | None = None) -> None:
        self._w3 = w3
        self._chain_id = chain_id

    @classmethod
    def from_settings(cls, settings: AppSettings) -> OnchainSafeReader:
        return cls(RpcClientFactory(settings).create(), chain_id=settings.chain_id)

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self._w3.eth.chain_id)
        return self._chain_id

    def _contract(self, address: str) -> Any:
        return self._w3.eth.contract(
            address=normalize_address(address, field_name="safe"),
            abi=SAFE_READ_ABI,
        )

    def get_safe(self, address: str) -> SafeState:
        contract = self._contract(address)
        try:
            owners = contract.functions.getOwners().call()
            threshold = contract.functions.getThreshold().call()
            nonce = contract.functions.nonce().call()
        except (BadFunctionCallOutput, ContractLogicError) as exc:
            raise UnknownSafe(f"unknown safe: {address}") from exc
        return SafeState.create(address, owners, int(threshold), nonce=int(nonce))

    def is_safe(self, address: str) -> bool:
        try:
            self.get_safe(address)
        except UnknownSafe:
            return False
        return True

    def is_hash_approved(self, owner_safe: str, approver: str, safe_tx_hash: bytes) -> bool:
        contract = self._contract(owner_safe)
        approved = contract.functions.approvedHashes(
            normalize_address(approver, field_name="approver"),
            safe_tx_hash,
        ).call()
        return int(approved) > 0

    def approvers(self, owner_safe: str, safe_tx_hash: bytes) -> tuple[str, ...]:
        owner = self.get_safe(owner_safe)
        approved = [
            candidate
            for candidate in owner.owners
            if self.is_hash_approved(owner.address, candidate, safe_tx_hash)
        ]
        return tuple(sorted(approved, key=address_sort_key))
