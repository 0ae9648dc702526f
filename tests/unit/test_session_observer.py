"""Unit tests for the session observer's stream and final log."""

import json

import pytest

from pairing_bots.models.agent_event import MessageUpdate, ToolExecutionEnd, ToolExecutionStart
from pairing_bots.models.pair_config import AgentId, EventStreamMode
from pairing_bots.services.session_observer import (
    SessionObserver,
    default_event_log_file,
    short_hash,
    summarize_tool_args,
    summarize_tool_result,
)


def read_stream(path):
    with open(path) as f:
        return [json.loads(line) for line in f if line.strip()]


class TestHelpers:
    def test_default_event_log_file(self):
        assert default_event_log_file("/tmp/run.json") == "/tmp/run.events.jsonl"
        assert default_event_log_file("/tmp/run.log") == "/tmp/run.log.events.jsonl"

    def test_short_hash(self):
        assert len(short_hash("abc")) == 12
        assert short_hash("abc") == short_hash("abc")

    def test_summarize_tool_args_hides_text(self):
        summary = summarize_tool_args({"path": "a.py", "content": "secret", "newText": "x"})

        assert summary["path"] == "a.py"
        assert summary["content_length"] == 6
        assert summary["content_hash"] == short_hash("secret")
        assert summary["new_text_length"] == 1
        assert "secret" not in json.dumps(summary)

    def test_summarize_tool_result(self):
        result = {"content": [{"type": "text", "text": "hello"}, {"type": "image"}]}
        assert summarize_tool_result(result) == {"content_blocks": 2, "first_text_length": 5}
        assert summarize_tool_result("plain") == {}


class TestSessionObserver:
    """Test recording, streaming and flushing."""

    @pytest.mark.asyncio
    async def test_flush_writes_stream_and_log(self, tmp_path):
        log_file = tmp_path / "logs" / "run.json"
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(log_file))
        observer.record("session", "test_event", actor="system", details={"value": 1})

        summary = await observer.flush("completed")
        observer.record("session", "after_flush")

        assert summary.event_count == 1
        assert summary.log_file == str(log_file)
        assert summary.event_stream_file == str(tmp_path / "logs" / "run.events.jsonl")
        assert observer.flushed is True
        assert len(observer.events) == 1

        lines = read_stream(summary.event_stream_file)
        assert [line.get("name") for line in lines] == ["event_stream_start", "test_event", "event_stream_end"]
        assert lines[-1]["status"] == "completed"
        assert lines[-1]["summary"]["event_count"] == 1

        payload = json.loads(log_file.read_text())
        assert payload["meta"]["status"] == "completed"
        assert payload["summary"]["event_count"] == 1
        assert payload["events"][0]["name"] == "test_event"

    @pytest.mark.asyncio
    async def test_flush_is_idempotent(self, tmp_path):
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(tmp_path / "run.json"))
        first = await observer.flush("failed", "boom")
        second = await observer.flush("completed")

        assert first is second
        payload = json.loads((tmp_path / "run.json").read_text())
        assert payload["meta"]["status"] == "failed"
        assert payload["meta"]["error_message"] == "boom"

    @pytest.mark.asyncio
    async def test_default_log_location(self, tmp_path):
        observer = SessionObserver(cwd=str(tmp_path), disable_event_stream=True)
        summary = await observer.flush("completed")

        assert summary.log_file.startswith(str(tmp_path / ".pairing-bots" / "logs" / "session-"))
        assert summary.event_stream_file is None

    @pytest.mark.asyncio
    async def test_compact_mode_skips_message_updates(self, tmp_path):
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(tmp_path / "run.json"))
        observer.record_agent_event(AgentId.A, "driving", MessageUpdate(), round=1)
        observer.record_agent_event(
            AgentId.A, "driving",
            ToolExecutionStart(tool_call_id="1", tool_name="write", args={"path": "a.py", "content": "abc"}),
            round=1,
        )
        observer.record_agent_event(
            AgentId.A, "driving", ToolExecutionEnd(tool_call_id="1", tool_name="write", is_error=True), round=1
        )
        summary = await observer.flush("completed")

        names = [line.get("name") for line in read_stream(summary.event_stream_file)]
        assert "message_update" not in names
        assert "tool_execution_start" in names
        assert summary.event_count == 3
        assert summary.tool_execution_count == 1
        assert summary.tool_execution_error_count == 1

    @pytest.mark.asyncio
    async def test_full_mode_keeps_message_updates(self, tmp_path):
        observer = SessionObserver(
            cwd=str(tmp_path), log_file=str(tmp_path / "run.json"), event_stream_mode=EventStreamMode.FULL
        )
        observer.record_agent_event(AgentId.B, "navigation", MessageUpdate())
        summary = await observer.flush("completed")

        names = [line.get("name") for line in read_stream(summary.event_stream_file)]
        assert "message_update" in names

    @pytest.mark.asyncio
    async def test_prompt_counts(self, tmp_path):
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(tmp_path / "run.json"))
        observer.record_prompt_start(AgentId.A, "planning", "plan_draft", "Draft a plan")
        observer.record_prompt_end(AgentId.A, "planning", "plan_draft", "1. step")
        summary = await observer.flush("completed")

        assert summary.prompt_count == 1
        start = observer.events[0]
        assert start.actor == "A"
        assert start.details["prompt_length"] == len("Draft a plan")
        assert "Draft a plan" not in json.dumps(start.details)

    @pytest.mark.asyncio
    async def test_stream_write_error_is_reported_not_raised(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        observer = SessionObserver(
            cwd=str(tmp_path),
            log_file=str(tmp_path / "run.json"),
            event_log_file=str(blocker / "events.jsonl"),
        )
        observer.record("session", "test_event")
        summary = await observer.flush("completed")

        assert summary.event_stream_write_error is not None
        assert summary.log_write_error is None
        assert json.loads((tmp_path / "run.json").read_text())["summary"]["event_count"] == 1

    @pytest.mark.asyncio
    async def test_log_write_error_is_reported_not_raised(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(blocker / "run.json"), disable_event_stream=True)
        summary = await observer.flush("completed")

        assert summary.log_write_error is not None
