# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger, metrics


@pytest.fixture
def captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is, plus ts_ms
    - output sink is patchable
    """
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    decoded = json.loads(captured[0])
    assert isinstance(decoded.pop("ts_ms"), int)
    assert decoded == payload


def test_caller_timestamp_is_kept(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "ts_ms": 42})

    assert json.loads(captured[0])["ts_ms"] == 42


def test_non_json_values_use_repr_and_keep_unicode(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "error": ValueError("boom"), "text": "你好"})

    decoded = json.loads(captured[0])
    assert decoded["error"] == "ValueError('boom')"
    assert "你好" in captured[0]


def test_unserializable_event_falls_back(captured: list[str]) -> None:
    loop: dict[str, Any] = {"event_type": "TEST"}
    loop["self"] = loop

    logger.log_event(loop)

    assert json.loads(captured[0])["event_type"] == "LOGGER_SERIALIZATION_ERROR"


# ---------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------

def test_timed_emits_one_metric_even_on_error(captured: list[str]) -> None:
    with pytest.raises(RuntimeError):
        with metrics.timed("iat_connect", session_id="iat_1"):
            raise RuntimeError("handshake failed")

    events = [json.loads(line) for line in captured]
    assert len(events) == 1
    assert events[0]["event_type"] == "METRIC_TIMER"
    assert events[0]["metric"] == "iat_connect"
    assert events[0]["session_id"] == "iat_1"
    assert events[0]["value_ms"] >= 0


def test_stopped_or_cancelled_timer_emits_nothing_more(captured: list[str]) -> None:
    timer_id = metrics.start_timer("iat_first_result")
    assert metrics.stop_timer(timer_id) is not None
    assert metrics.stop_timer(timer_id) is None

    cancelled = metrics.start_timer("iat_first_result")
    metrics.cancel_timer(cancelled)
    assert metrics.stop_timer(cancelled) is None
    assert metrics.stop_timer(None) is None

    assert len(captured) == 1
