from argparse import Namespace

from eth_utils import to_checksum_address

from nested_safe_builder.commands.propose_hash import parse_call_batch, run_propose_hash
from nested_safe_builder.config import AppSettings
from nested_safe_builder.types import CommandStatus

SAFE = to_checksum_address("0x" + "0a" * 20)
COUNTER = to_checksum_address("0x" + "c0" * 20)


def _settings() -> AppSettings:
    return AppSettings()


def _args(**overrides: object) -> Namespace:
    base = {
        "safe": SAFE,
        "nonce": 0,
        "chain_id": None,
        "calls": [{"target": COUNTER, "data": "0xd09de08a"}],
    }
    base.update(overrides)
    return Namespace(**base)


def test_propose_hash_succeeds_for_valid_input() -> None:
    result = run_propose_hash(_args(), _settings())

    assert result.status == CommandStatus.PENDING
    assert result.details["total_value"] == 0
    assert result.details["signing_payload"]["chain_id"] == 1
    assert result.details["calls"][0]["target"] == COUNTER


def test_chain_id_override_changes_hash() -> None:
    mainnet = run_propose_hash(_args(), _settings())
    optimism = run_propose_hash(_args(chain_id=10), _settings())

    assert (
        mainnet.details["signing_payload"]["safe_tx_hash"]
        != optimism.details["signing_payload"]["safe_tx_hash"]
    )


def test_propose_hash_rejects_boolean_nonce() -> None:
    result = run_propose_hash(_args(nonce=True), _settings())

    assert result.status == CommandStatus.FAILED
    assert result.details["error"] == "nonce must be an integer"


def test_propose_hash_rejects_invalid_safe() -> None:
    result = run_propose_hash(_args(safe="safe111"), _settings())

    assert result.status == CommandStatus.FAILED
    assert result.details["error"] == "safe must be a valid EVM address"


def test_propose_hash_rejects_non_object_calls() -> None:
    result = run_propose_hash(_args(calls=["0xd09de08a"]), _settings())

    assert result.status == CommandStatus.FAILED
    assert result.details["error"] == "each call must be a JSON object"


def test_parse_call_batch_accepts_wrapped_calls() -> None:
    batch = parse_call_batch({"calls": [{"target": COUNTER, "value": 1, "allow_failure": True}]})

    assert batch.calls[0].value == 1
    assert batch.calls[0].allow_failure is True


def test_propose_hash_reports_total_value() -> None:
    calls = [{"target": COUNTER, "value": 2}, {"target": COUNTER, "value": 3, "allow_failure": True}]

    result = run_propose_hash(_args(calls=calls), _settings())

    assert result.details["total_value"] == 5
