from dataclasses import dataclass, field
from typing import Any

import pytest
from eth_utils import to_checksum_address
from web3.exceptions import BadFunctionCallOutput

from nested_safe_builder.config import AppSettings
from nested_safe_builder.evm.rpc_client import OnchainSafeReader, RpcClientFactory
from nested_safe_builder.orchestration.errors import UnknownSafe

SAFE = to_checksum_address("0x" + "0a" * 20)
OWNER_LOW = to_checksum_address("0x" + "01" * 20)
OWNER_HIGH = to_checksum_address("0x" + "f1" * 20)
HASH = b"\x42" * 32


@dataclass
class _Call:
    result: Any

    def call(self) -> Any:
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@dataclass
class _Functions:
    state: dict[str, Any]
    approved: set[tuple[str, bytes]]

    def getOwners(self) -> _Call:  # noqa: N802
        return _Call(self.state["owners"])

    def getThreshold(self) -> _Call:  # noqa: N802
        return _Call(self.state["threshold"])

    def nonce(self) -> _Call:
        return _Call(self.state["nonce"])

    def approvedHashes(self, owner: str, safe_tx_hash: bytes) -> _Call:  # noqa: N802
        return _Call(1 if (owner, safe_tx_hash) in self.approved else 0)


@dataclass
class _Contract:
    functions: _Functions


@dataclass
class _Eth:
    safes: dict[str, dict[str, Any]]
    approved: set[tuple[str, bytes]] = field(default_factory=set)
    chain_id: int = 11155111

    def contract(self, address: str, abi: list[dict[str, Any]]) -> _Contract:
        state = self.safes.get(
            address,
            {
                "owners": BadFunctionCallOutput("no code"),
                "threshold": 0,
                "nonce": 0,
            },
        )
        return _Contract(functions=_Functions(state=state, approved=self.approved))


@dataclass
class _Web3:
    eth: _Eth


def _reader(**kwargs: Any) -> OnchainSafeReader:
    eth = _Eth(
        safes={SAFE: {"owners": [OWNER_HIGH, OWNER_LOW], "threshold": 1, "nonce": 7}},
        approved={(OWNER_HIGH, HASH), (OWNER_LOW, HASH)},
    )
    return OnchainSafeReader(_Web3(eth=eth), **kwargs)  # type: ignore[arg-type]


def test_get_safe_reads_owners_threshold_and_nonce() -> None:
    state = _reader().get_safe(SAFE.lower())

    assert state.address == SAFE
    assert state.owners == (OWNER_HIGH, OWNER_LOW)
    assert state.threshold == 1
    assert state.nonce == 7


def test_missing_safe_is_unknown() -> None:
    reader = _reader()
    missing = to_checksum_address("0x" + "ee" * 20)

    with pytest.raises(UnknownSafe):
        reader.get_safe(missing)
    assert reader.is_safe(missing) is False
    assert reader.is_safe(SAFE) is True


def test_approvers_are_sorted_owners_with_approvals() -> None:
    reader = _reader()

    assert reader.approvers(SAFE, HASH) == (OWNER_LOW, OWNER_HIGH)
    assert reader.approvers(SAFE, b"\x00" * 32) == ()
    assert reader.is_hash_approved(SAFE, OWNER_LOW, HASH) is True


def test_chain_id_is_read_lazily_unless_pinned() -> None:
    assert _reader().chain_id == 11155111
    assert _reader(chain_id=1).chain_id == 1


def test_factory_targets_configured_rpc_url() -> None:
    settings = AppSettings(rpc_url="http://node.invalid:8545")

    w3 = RpcClientFactory(settings).create()

    assert w3.provider.endpoint_uri == "http://node.invalid:8545"
