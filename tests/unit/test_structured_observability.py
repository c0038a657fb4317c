"""Structured JSON logs keyed by safe, nonce and hash."""
import json

import pytest

from nested_safe_builder.domain.call_batch import CallBatch
from nested_safe_builder.environment.state import InMemoryEnvironment
from nested_safe_builder.observability.logging import configure_logging, get_logger
from nested_safe_builder.orchestration.errors import NotEnoughApprovals
from nested_safe_builder.orchestration.execution import run
from nested_safe_builder.orchestration.hasher import propose_hash


def _events(err: str) -> list[dict[str, object]]:
    return [json.loads(line) for line in err.splitlines() if line.strip()]


def test_structured_logging_outputs_json_on_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("DEBUG")
    logger = get_logger("test")

    logger.info("test_event", safe="0xabc", nonce=3)

    captured = capsys.readouterr()
    assert captured.out == ""
    (event,) = _events(captured.err)
    assert event["event"] == "test_event"
    assert event["level"] == "info"
    assert event["nonce"] == 3
    assert "timestamp" in event


def test_logging_respects_configured_level(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("WARNING")
    logger = get_logger("test")

    logger.info("quiet_event")
    logger.warning("loud_event")

    events = _events(capsys.readouterr().err)
    assert [event["event"] for event in events] == ["loud_event"]


def test_proposal_log_carries_safe_nonce_and_hash(
    capsys: pytest.CaptureFixture[str],
    env: InMemoryEnvironment,
    addresses: dict[str, str],
    increment_batch: CallBatch,
) -> None:
    configure_logging("DEBUG")

    payload = propose_hash(env, addresses["owner_safe"], increment_batch)

    (event,) = _events(capsys.readouterr().err)
    assert event["event"] == "safe_tx_proposed"
    assert event["safe"] == addresses["owner_safe"]
    assert event["nonce"] == 0
    assert event["safe_tx_hash"] == "0x" + payload.safe_tx_hash.hex()
    assert event["calls"] == 1
    assert event["value"] == 0


def test_rejected_execution_is_logged_as_warning(
    capsys: pytest.CaptureFixture[str],
    env: InMemoryEnvironment,
    addresses: dict[str, str],
    increment_batch: CallBatch,
) -> None:
    configure_logging("DEBUG")

    with pytest.raises(NotEnoughApprovals):
        run(env, addresses["owner_safe"], increment_batch)

    events = _events(capsys.readouterr().err)
    rejected = [event for event in events if event["event"] == "execution_rejected"]
    assert len(rejected) == 1
    assert rejected[0]["level"] == "warning"
    assert rejected[0]["approvals"] == 0
    assert rejected[0]["threshold"] == 2


def test_logged_private_keys_are_redacted(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging("DEBUG")
    logger = get_logger("test")

    logger.info("signer_loaded", signer_private_key="0x" + "11" * 32, signer="0xabc")

    captured = capsys.readouterr()
    assert "11" * 32 not in captured.err
    (event,) = _events(captured.err)
    assert event["signer_private_key"] == "***REDACTED***"
    assert event["signer"] == "0xabc"
