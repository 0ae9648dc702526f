"""
Session observer with a JSONL event stream and a final JSON log.

Recording is synchronous so it can run inside runtime event callbacks;
stream lines are written by a background task and drained on flush. Write
failures never propagate: they surface in the returned summary.
"""

import asyncio
import hashlib
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
from pydantic import BaseModel, Field

from pairing_bots.models.agent_event import (
    AgentEvent,
    MessageEnd,
    MessageStart,
    MessageUpdate,
    ToolExecutionEnd,
    ToolExecutionStart,
    TurnEnd,
)
from pairing_bots.models.pair_config import AgentId, EventStreamMode
from pairing_bots.models.run_result import ObservabilitySummary


logger = logging.getLogger(__name__)

LOG_DIRECTORY = Path(".pairing-bots") / "logs"


class LogEvent(BaseModel):
    """One entry of the observability trail."""

    index: int
    timestamp: datetime
    category: str = Field(..., description="session, prompt, agent_event or orchestrator")
    name: str
    actor: Optional[str] = None
    round: Optional[int] = None
    phase: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


def short_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]


def default_event_log_file(log_file: str) -> str:
    if log_file.endswith(".json"):
        return log_file[:-len(".json")] + ".events.jsonl"
    return log_file + ".events.jsonl"


def summarize_tool_args(args: Any) -> Dict[str, Any]:
    """Path plus lengths and hashes of the bulky text arguments."""
    if not isinstance(args, dict):
        return {}

    summary: Dict[str, Any] = {}
    if isinstance(args.get("path"), str):
        summary["path"] = args["path"]

    text_fields = {
        "command": ("command",),
        "content": ("content",),
        "old_text": ("old_text", "oldText"),
        "new_text": ("new_text", "newText"),
    }
    for label, keys in text_fields.items():
        for key in keys:
            value = args.get(key)
            if isinstance(value, str):
                summary[f"{label}_length"] = len(value)
                summary[f"{label}_hash"] = short_hash(value)
                break

    return summary


def summarize_tool_result(result: Any) -> Dict[str, Any]:
    if not isinstance(result, dict):
        return {}

    summary: Dict[str, Any] = {}
    content = result.get("content")
    if isinstance(content, list):
        summary["content_blocks"] = len(content)
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                if isinstance(block.get("text"), str):
                    summary["first_text_length"] = len(block["text"])
                break

    return summary


class SessionObserver:
    """Append-only observability trail for one run."""

    def __init__(
        self,
        cwd: str,
        log_file: Optional[str] = None,
        event_log_file: Optional[str] = None,
        disable_event_stream: bool = False,
        event_stream_mode: EventStreamMode = EventStreamMode.COMPACT,
    ):
        self.started_at = datetime.now(timezone.utc)
        self._started_monotonic = time.monotonic()
        stamp = self.started_at.strftime("%Y-%m-%dT%H-%M-%S-%fZ")

        self.log_file = log_file or str(Path(cwd) / LOG_DIRECTORY / f"session-{stamp}.json")
        if disable_event_stream:
            self.event_log_file: Optional[str] = None
        else:
            self.event_log_file = event_log_file or default_event_log_file(self.log_file)
        self.event_stream_mode = EventStreamMode(event_stream_mode)

        self.events: List[LogEvent] = []
        self._closed = False
        self._summary: Optional[ObservabilitySummary] = None

        self._pending_lines: List[str] = []
        self._writer: Optional[asyncio.Task] = None
        self._stream_initialized = False
        self._stream_write_error: Optional[str] = None

        self._queue_line({
            "type": "meta",
            "name": "event_stream_start",
            "timestamp": self.started_at.isoformat(),
            "log_file": self.log_file,
            "event_stream_mode": self.event_stream_mode.value,
        })

    @property
    def flushed(self) -> bool:
        return self._summary is not None

    def _should_stream(self, event: LogEvent) -> bool:
        if self.event_stream_mode == EventStreamMode.FULL:
            return True
        return not (event.category == "agent_event" and event.name == "message_update")

    def _queue_line(self, entry: Dict[str, Any]) -> None:
        if self.event_log_file is None or self._stream_write_error is not None:
            return
        self._pending_lines.append(json.dumps(entry, default=str) + "\n")
        self._schedule_writer()

    def _schedule_writer(self) -> None:
        if self._writer is not None and not self._writer.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; lines stay buffered until flush.
            return
        self._writer = loop.create_task(self._write_pending())

    async def _write_pending(self) -> None:
        while self._pending_lines and self._stream_write_error is None:
            lines, self._pending_lines = self._pending_lines, []
            try:
                if not self._stream_initialized:
                    Path(self.event_log_file).parent.mkdir(parents=True, exist_ok=True)
                    async with aiofiles.open(self.event_log_file, 'w') as f:
                        await f.write("")
                    self._stream_initialized = True
                async with aiofiles.open(self.event_log_file, 'a') as f:
                    await f.write("".join(lines))
            except OSError as e:
                self._stream_write_error = str(e)
                self._pending_lines = []
                logger.warning(f"Event stream disabled after write failure: {e}")

    async def _drain(self) -> None:
        if self._writer is not None and not self._writer.done():
            await self._writer
        await self._write_pending()

    def record(
        self,
        category: str,
        name: str,
        actor: Optional[str] = None,
        round: Optional[int] = None,
        phase: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append an event; ignored once the observer is flushed."""
        if self._closed:
            return
        event = LogEvent(
            index=len(self.events),
            timestamp=datetime.now(timezone.utc),
            category=category,
            name=name,
            actor=actor.value if isinstance(actor, AgentId) else actor,
            round=round,
            phase=phase,
            details=details,
        )
        self.events.append(event)
        if self._should_stream(event):
            self._queue_line({"type": "event", **event.model_dump(mode="json", exclude_none=True)})

    def record_prompt_start(
        self,
        actor: AgentId,
        phase: str,
        prompt_kind: str,
        prompt: str,
        round: Optional[int] = None,
    ) -> None:
        self.record("prompt", "prompt_start", actor=actor, round=round, phase=phase, details={
            "prompt_kind": prompt_kind,
            "prompt_length": len(prompt),
            "prompt_hash": short_hash(prompt),
        })

    def record_prompt_end(
        self,
        actor: AgentId,
        phase: str,
        prompt_kind: str,
        response: str,
        round: Optional[int] = None,
    ) -> None:
        self.record("prompt", "prompt_end", actor=actor, round=round, phase=phase, details={
            "prompt_kind": prompt_kind,
            "response_length": len(response),
            "response_hash": short_hash(response),
        })

    def record_agent_event(
        self,
        actor: AgentId,
        phase: str,
        event: AgentEvent,
        round: Optional[int] = None,
    ) -> None:
        details: Optional[Dict[str, Any]] = None

        if isinstance(event, MessageUpdate):
            details = {"assistant_event_type": event.assistant_event_type}
        elif isinstance(event, ToolExecutionStart):
            details = {
                "tool_call_id": event.tool_call_id,
                "tool_name": event.tool_name,
                "args": summarize_tool_args(event.args),
            }
        elif isinstance(event, ToolExecutionEnd):
            details = {
                "tool_call_id": event.tool_call_id,
                "tool_name": event.tool_name,
                "is_error": event.is_error,
                "result": summarize_tool_result(event.result),
            }
        elif isinstance(event, (MessageStart, MessageEnd, TurnEnd)):
            details = {"role": event.role.value}
            if isinstance(event, TurnEnd):
                details["tool_results"] = event.tool_results
            if event.stop_reason is not None:
                details["stop_reason"] = event.stop_reason.value
            if event.error_message:
                details["error_message"] = event.error_message

        self.record("agent_event", event.type, actor=actor, round=round, phase=phase, details=details)

    async def flush(self, status: str, error_message: Optional[str] = None) -> ObservabilitySummary:
        """Write the final log and close the stream; repeated calls return the first summary."""
        if self._summary is not None:
            return self._summary
        self._closed = True

        ended_at = datetime.now(timezone.utc)
        duration_ms = int((time.monotonic() - self._started_monotonic) * 1000)
        prompt_count = sum(1 for e in self.events if e.category == "prompt" and e.name == "prompt_start")
        tool_ends = [e for e in self.events if e.category == "agent_event" and e.name == "tool_execution_end"]
        tool_error_count = sum(1 for e in tool_ends if (e.details or {}).get("is_error"))

        end_line: Dict[str, Any] = {
            "type": "meta",
            "name": "event_stream_end",
            "timestamp": ended_at.isoformat(),
            "status": status,
            "summary": {
                "event_count": len(self.events),
                "prompt_count": prompt_count,
                "tool_execution_count": len(tool_ends),
                "tool_execution_error_count": tool_error_count,
                "duration_ms": duration_ms,
                "event_stream_mode": self.event_stream_mode.value,
            },
        }
        if error_message:
            end_line["error_message"] = error_message
        self._queue_line(end_line)
        await self._drain()

        summary = ObservabilitySummary(
            log_file=self.log_file,
            event_stream_file=self.event_log_file,
            event_stream_mode=self.event_stream_mode,
            event_stream_write_error=self._stream_write_error,
            event_count=len(self.events),
            prompt_count=prompt_count,
            tool_execution_count=len(tool_ends),
            tool_execution_error_count=tool_error_count,
            duration_ms=duration_ms,
        )

        payload = {
            "meta": {
                "started_at": self.started_at.isoformat(),
                "ended_at": ended_at.isoformat(),
                "duration_ms": duration_ms,
                "status": status,
                "error_message": error_message,
                "event_log_file": self.event_log_file,
                "event_stream_mode": self.event_stream_mode.value,
                "event_log_write_error": self._stream_write_error,
            },
            "summary": summary.model_dump(mode="json", exclude_none=True),
            "events": [e.model_dump(mode="json", exclude_none=True) for e in self.events],
        }

        try:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.log_file, 'w') as f:
                await f.write(json.dumps(payload, indent=2, default=str))
        except OSError as e:
            logger.warning(f"Could not write observability log {self.log_file}: {e}")
            summary = summary.model_copy(update={"log_write_error": str(e)})

        self._summary = summary
        return summary
