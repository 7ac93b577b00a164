"""
Tests for telemetry events and the instrument decorator.

All tests run fully offline: events are captured from the log and the
Supabase client is a MagicMock.
"""
import sys
import os
import asyncio
import json
import logging
from unittest.mock import MagicMock, patch

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from satcraft.core.errors import RateLimited
from satcraft.services.telemetry import emit_event, instrument

_run = asyncio.run


def _events(caplog):
    return [
        json.loads(r.getMessage().split("telemetry=", 1)[1])
        for r in caplog.records
        if r.name == "satcraft.telemetry" and "telemetry=" in r.getMessage()
    ]


# ---------------------------------------------------------------------------
# emit_event
# ---------------------------------------------------------------------------

class TestEmitEvent:
    def test_logs_single_line_json(self, caplog, monkeypatch):
        monkeypatch.delenv("ENABLE_TELEMETRY_DB", raising=False)
        with caplog.at_level(logging.INFO, logger="satcraft.telemetry"):
            emit_event("question_generated", route="/api/questions/generate", version="v1",
                       user_id="u1", section="math", ok=True, score=0.9)

        event = _events(caplog)[0]
        assert event["event"] == "question_generated"
        assert event["section"] == "math"
        assert event["score"] == 0.9
        assert "\n" not in caplog.records[0].getMessage()

    def test_persists_when_enabled(self, monkeypatch):
        monkeypatch.setenv("ENABLE_TELEMETRY_DB", "1")
        sb = MagicMock()
        with patch("satcraft.core.deps.get_supabase_client", return_value=sb):
            emit_event("api_call", route="/api/chat", version="v1", ok=True)

        sb.table.assert_called_once_with("telemetry_events")
        row = sb.table.return_value.insert.call_args.args[0]
        assert row["route"] == "/api/chat"
        assert "ts" not in row

    def test_persistence_failure_does_not_raise(self, monkeypatch):
        monkeypatch.setenv("ENABLE_TELEMETRY_DB", "1")
        with patch("satcraft.core.deps.get_supabase_client", side_effect=RuntimeError("offline")):
            emit_event("api_call", route="/api/chat", version="v1", ok=True)


# ---------------------------------------------------------------------------
# instrument
# ---------------------------------------------------------------------------

class TestInstrument:
    def test_async_success(self, caplog, monkeypatch):
        monkeypatch.delenv("ENABLE_TELEMETRY_DB", raising=False)

        @instrument(route="/api/x", version="v1")
        async def handler(value):
            return value * 2

        with caplog.at_level(logging.INFO, logger="satcraft.telemetry"):
            assert _run(handler(21)) == 42

        event = _events(caplog)[-1]
        assert event["ok"] is True
        assert event["route"] == "/api/x"
        assert isinstance(event["latency_ms"], int)

    def test_async_failure_records_error_kind(self, caplog, monkeypatch):
        monkeypatch.delenv("ENABLE_TELEMETRY_DB", raising=False)

        @instrument(route="/api/x", version="v1")
        async def handler():
            raise RateLimited("slow down")

        with caplog.at_level(logging.INFO, logger="satcraft.telemetry"):
            with pytest.raises(RateLimited):
                _run(handler())

        event = _events(caplog)[-1]
        assert event["ok"] is False
        assert event["error_kind"] == "rate_limit"

    def test_sync_failure_uses_class_name(self, caplog, monkeypatch):
        monkeypatch.delenv("ENABLE_TELEMETRY_DB", raising=False)

        @instrument(route="/api/y", version="v1")
        def handler():
            raise KeyError("missing")

        with caplog.at_level(logging.INFO, logger="satcraft.telemetry"):
            with pytest.raises(KeyError):
                handler()

        assert _events(caplog)[-1]["error_kind"] == "KeyError"

    def test_wraps_preserves_name(self):
        @instrument(route="/api/z", version="v1")
        async def generate_question():
            return None

        assert generate_question.__name__ == "generate_question"
