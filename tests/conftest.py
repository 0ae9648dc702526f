"""Shared fixtures: scripted replies, tool-call events and worker construction."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest

from pairing_bots.models.agent_event import ToolExecutionEnd, ToolExecutionStart
from pairing_bots.models.pair_config import AgentId, PairAgentConfig
from pairing_bots.services.model_worker import ModelWorker
from pairing_bots.services.scripted_runtime import ScriptedRuntime, ScriptedTurn


class Replies:
    """Builders for tagged worker responses and tool-call event pairs."""

    @staticmethod
    def plan(tag: str, text: str) -> str:
        return f"<{tag}>\n{text}\n</{tag}>"

    @staticmethod
    def driver(status: str = "continue", summary: str = "Worked on it", changes: str = "src/app.py",
               questions: str = "NONE") -> str:
        return (
            f"<status>{status}</status>\n"
            f"<summary>{summary}</summary>\n"
            f"<changes>{changes}</changes>\n"
            f"<questions_for_navigator>{questions}</questions_for_navigator>"
        )

    @staticmethod
    def review(feedback: str = "NONE", recommendation: str = "continue",
               reflection: str = "Looks reasonable") -> str:
        return (
            f"<private_reflection>{reflection}</private_reflection>\n"
            f"<public_feedback>{feedback}</public_feedback>\n"
            f"<driver_recommendation>{recommendation}</driver_recommendation>"
        )

    @staticmethod
    def decision(decision: str = "accept", justification: str = "Feedback is correct") -> str:
        return f"<decision>{decision}</decision>\n<justification>{justification}</justification>"

    @staticmethod
    def verdict(verdict: str = "APPROVED", rationale: str = "Both reviews are clean",
                next_steps: str = "NONE") -> str:
        return (
            f"<joint_verdict>{verdict}</joint_verdict>\n"
            f"<rationale>{rationale}</rationale>\n"
            f"<next_steps>{next_steps}</next_steps>"
        )

    @staticmethod
    def tool_call(call_id: str, tool_name: str, args: Optional[Dict[str, Any]] = None,
                  is_error: bool = False) -> List[Any]:
        return [
            ToolExecutionStart(tool_call_id=call_id, tool_name=tool_name, args=args or {}),
            ToolExecutionEnd(tool_call_id=call_id, tool_name=tool_name, is_error=is_error),
        ]

    @classmethod
    def write_call(cls, call_id: str, content: str, path: str = "src/app.py", is_error: bool = False) -> List[Any]:
        return cls.tool_call(call_id, "write", {"path": path, "content": content}, is_error=is_error)

    @classmethod
    def turn(cls, response: str, events: Sequence[Any] = ()) -> ScriptedTurn:
        return ScriptedTurn(response=response, events=list(events))


@pytest.fixture
def replies():
    return Replies


@pytest.fixture
def pair_config(tmp_path):
    """Sticky policy, count-based pausing every 2 writes, 4 rounds max."""
    return PairAgentConfig(
        cwd=str(tmp_path),
        max_rounds=4,
        pause_strategy={"mode": "every_n_file_edits", "edits_per_pause": 2},
        turn_policy={"mode": "same_driver_until_navigator_signoff"},
    )


@pytest.fixture
def make_workers():
    """Build both workers over scripted runtimes; returns (workers, runtimes)."""

    def build(config: PairAgentConfig, script_a: Sequence[Any], script_b: Sequence[Any]):
        runtimes = {AgentId.A: ScriptedRuntime(script_a), AgentId.B: ScriptedRuntime(script_b)}
        workers = {
            agent_id: ModelWorker(agent_id, config.model_for(agent_id), runtime)
            for agent_id, runtime in runtimes.items()
        }
        return workers, runtimes

    return build


def make_clock():
    """Deterministic clock advancing one second per call."""
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ticks = {"n": 0}

    def clock() -> datetime:
        value = start + timedelta(seconds=ticks["n"])
        ticks["n"] += 1
        return value

    return clock


@pytest.fixture
def fixed_clock():
    return make_clock()


@pytest.fixture
def clock_factory():
    return make_clock
