"""
Checkpoint detection and write estimation over a driver's event stream.

The tracker only observes: it never starts tool calls, and its checkpoint
callback is the single way it reaches back into the run.
"""

import logging
import math
from typing import Any, Callable, Dict, Optional

from pairing_bots.models.agent_event import AgentEvent, ToolExecutionEnd, ToolExecutionStart
from pairing_bots.models.pair_config import EveryNCallsPause, PauseStrategy
from pairing_bots.models.run_result import TrackerSnapshot
from pairing_bots.services.prompt_builder import DRIVING_PHASE, FEEDBACK_RESOLUTION_PHASE


logger = logging.getLogger(__name__)

WRITE_TOOLS = frozenset({"edit", "write"})

CheckpointCallback = Callable[[str], None]


def estimate_written_bytes(tool_name: str, args: Any) -> int:
    """UTF-8 size of the text a write-capable call would produce; 0 when unknown."""
    if not isinstance(args, dict):
        return 0

    if tool_name == "write":
        content = args.get("content")
    elif tool_name == "edit":
        content = args.get("new_text", args.get("newText"))
    else:
        return 0

    if not isinstance(content, str):
        return 0
    return len(content.encode("utf-8"))


class ExecutionTracker:
    """Counts qualifying tool calls for one round and fires checkpoints."""

    def __init__(self, pause_strategy: PauseStrategy, on_checkpoint: Optional[CheckpointCallback] = None):
        self.pause_strategy = pause_strategy
        self.on_checkpoint = on_checkpoint

        self._count_based = isinstance(pause_strategy, EveryNCallsPause)
        self.counted_edits = 0
        self.next_checkpoint_at = pause_strategy.edits_per_pause if self._count_based else math.inf
        self.pause_triggered = False
        self.checkpoint_count = 0
        self.edit_write_call_count = 0
        self.estimated_written_bytes = 0
        self._pending_estimates: Dict[str, int] = {}
        self._phase = DRIVING_PHASE

    @property
    def phase(self) -> str:
        return self._phase

    def set_phase(self, phase: str) -> None:
        if phase not in (DRIVING_PHASE, FEEDBACK_RESOLUTION_PHASE):
            raise ValueError(f"Unknown tracker phase: {phase}")
        self._phase = phase

    @property
    def pending_call_ids(self):
        return frozenset(self._pending_estimates)

    def __call__(self, event: AgentEvent) -> None:
        self.handle_event(event)

    def handle_event(self, event: AgentEvent) -> None:
        if isinstance(event, ToolExecutionStart):
            if event.tool_name in WRITE_TOOLS:
                self._pending_estimates[event.tool_call_id] = estimate_written_bytes(event.tool_name, event.args)
            return

        if not isinstance(event, ToolExecutionEnd):
            return

        if event.tool_name in WRITE_TOOLS:
            estimate = self._pending_estimates.pop(event.tool_call_id, 0)
            if not event.is_error:
                self.edit_write_call_count += 1
                self.estimated_written_bytes += estimate

        if event.is_error or not self._count_based:
            return
        if event.tool_name not in self.pause_strategy.counted_tools:
            return

        self.counted_edits += 1
        if self.counted_edits >= self.next_checkpoint_at:
            self._fire_checkpoint()

    def _fire_checkpoint(self) -> None:
        self.pause_triggered = True
        self.checkpoint_count += 1
        self.next_checkpoint_at += self.pause_strategy.edits_per_pause
        logger.info(
            "Checkpoint %d fired after %d counted calls (%s phase)",
            self.checkpoint_count, self.counted_edits, self._phase
        )
        if self.on_checkpoint is not None:
            self.on_checkpoint(self._phase)

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            pause_triggered=self.pause_triggered,
            checkpoint_count=self.checkpoint_count,
            edit_write_call_count=self.edit_write_call_count,
            estimated_written_bytes=self.estimated_written_bytes,
        )
