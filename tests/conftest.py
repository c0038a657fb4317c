from __future__ import annotations

from collections.abc import Callable

import pytest
from eth_abi import encode
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from nested_safe_builder.domain.approval import ApprovalRecord
from nested_safe_builder.domain.call_batch import Call, CallBatch
from nested_safe_builder.environment.contracts import CallContext, CallReverted, Contract, external
from nested_safe_builder.environment.state import InMemoryEnvironment
from nested_safe_builder.evm.codecs.calls import function_selector
from nested_safe_builder.orchestration.approval_collector import approval_payload, approve, sign

OWNER_SAFE = to_checksum_address("0x" + "0a" * 20)
SAFE_A = to_checksum_address("0x" + "0b" * 20)
SAFE_B = to_checksum_address("0x" + "0c" * 20)
COUNTER = to_checksum_address("0x" + "c0" * 20)


class Counter(Contract):
    @external("increment()")
    def increment(self, ctx: CallContext) -> None:
        ctx.sstore("count", ctx.sload("count") + 1)

    @external("incrementBy(uint256)")
    def increment_by(self, ctx: CallContext, amount: int) -> None:
        ctx.require(amount > 0, "amount must be positive")
        ctx.sstore("count", ctx.sload("count") + amount)

    @external("count()")
    def count(self, ctx: CallContext) -> bytes:
        return encode(["uint256"], [ctx.sload("count")])

    @external("fail()")
    def fail(self, ctx: CallContext) -> None:
        raise CallReverted("counter: forced failure")


@pytest.fixture
def addresses() -> dict[str, str]:
    return {
        "owner_safe": OWNER_SAFE,
        "safe_a": SAFE_A,
        "safe_b": SAFE_B,
        "counter": COUNTER,
    }


@pytest.fixture
def members() -> dict[str, LocalAccount]:
    return {
        "w1": Account.from_key("0x" + "11" * 32),
        "w2": Account.from_key("0x" + "22" * 32),
        "w3": Account.from_key("0x" + "33" * 32),
        "outsider": Account.from_key("0x" + "44" * 32),
    }


@pytest.fixture
def env(members: dict[str, LocalAccount]) -> InMemoryEnvironment:
    """Owner safe (2 of 2) owned by SAFE_A (w1, 1 of 1) and SAFE_B (w2, 1 of 1)."""
    environment = InMemoryEnvironment(chain_id=1)
    environment.deploy_contract(COUNTER, Counter())
    environment.register_safe(SAFE_A, [members["w1"].address], 1)
    environment.register_safe(SAFE_B, [members["w2"].address], 1)
    environment.register_safe(OWNER_SAFE, [SAFE_A, SAFE_B], 2)
    return environment


@pytest.fixture
def make_call() -> Callable[..., Call]:
    def factory(
        signature: str = "increment()",
        *,
        args: bytes = b"",
        value: int = 0,
        allow_failure: bool = False,
    ) -> Call:
        return Call(
            target=COUNTER,
            data=function_selector(signature) + args,
            value=value,
            allow_failure=allow_failure,
        )

    return factory


@pytest.fixture
def increment_batch(make_call: Callable[..., Call]) -> CallBatch:
    return CallBatch.of([make_call("increment()")])


@pytest.fixture
def approve_as(env: InMemoryEnvironment) -> Callable[..., ApprovalRecord]:
    """Approve ``owner_hash`` on the owner safe through ``signer_safe`` signed by ``account``."""

    def factory(signer_safe: str, account: LocalAccount, owner_hash: bytes) -> ApprovalRecord:
        payload = approval_payload(env, signer_safe, OWNER_SAFE, owner_hash)
        return approve(env, signer_safe, OWNER_SAFE, owner_hash, [sign(account, payload)])

    return factory
