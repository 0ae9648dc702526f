"""
Scripted model runtime for replays and tests.

Returns predefined turns in sequence, emitting each turn's events through
the normal listener path so trackers and observers see a real stream.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from pairing_bots.lib.errors import RuntimeScriptError
from pairing_bots.models.agent_event import (
    AgentEnd,
    AgentEvent,
    AgentStart,
    AssistantMessage,
    MessageEnd,
    StopReason,
)
from pairing_bots.models.pair_config import AgentId, ModelSpec
from pairing_bots.services.base_model_runtime import BaseModelRuntime, RuntimeFactory


logger = logging.getLogger(__name__)


class ScriptedTurn(BaseModel):
    """One scripted model invocation."""

    response: str = ""
    events: List[AgentEvent] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.STOP
    error_message: Optional[str] = None


TurnSpec = Union[ScriptedTurn, str, Dict[str, Any]]


def _coerce_turn(turn: TurnSpec) -> ScriptedTurn:
    if isinstance(turn, ScriptedTurn):
        return turn
    if isinstance(turn, str):
        return ScriptedTurn(response=turn)
    return ScriptedTurn.model_validate(turn)


class ScriptedRuntime(BaseModelRuntime):
    """Replays predefined turns and records everything sent to it."""

    def __init__(self, turns: Sequence[TurnSpec]):
        """
        Args:
            turns: Turns to play back in order; plain strings become text-only turns
        """
        super().__init__()
        try:
            self._turns = [_coerce_turn(turn) for turn in turns]
        except ValidationError as e:
            raise RuntimeScriptError(f"Invalid scripted turn: {e}")
        self._call_count = 0
        self._in_flight = False

        self.prompts: List[str] = []
        self.messages: List[str] = []
        self.steers: List[str] = []
        self.tool_history: List[List[str]] = []

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def remaining(self) -> int:
        return len(self._turns) - self._call_count

    @property
    def tools(self) -> List[str]:
        return self.tool_history[-1] if self.tool_history else []

    def set_tools(self, tool_names: Sequence[str]) -> None:
        self.tool_history.append(list(tool_names))

    def append_message(self, text: str) -> None:
        self.messages.append(text)

    def steer(self, text: str) -> None:
        if not self._in_flight:
            raise RuntimeScriptError("steer() called with no scripted turn in flight")
        self.steers.append(text)

    async def prompt(self, text: str) -> Optional[AssistantMessage]:
        if self._call_count >= len(self._turns):
            raise RuntimeScriptError(f"Scripted runtime exhausted after {len(self._turns)} turns")

        turn = self._turns[self._call_count]
        self._call_count += 1
        self.prompts.append(text)

        message = AssistantMessage(text=turn.response, stop_reason=turn.stop_reason, error_message=turn.error_message)
        self._in_flight = True
        try:
            self._emit(AgentStart())
            for event in turn.events:
                self._emit(event)
            self._emit(MessageEnd(stop_reason=message.stop_reason, error_message=message.error_message))
            self._emit(AgentEnd())
        finally:
            self._in_flight = False
        return message

    def reset(self) -> None:
        """Rewind to the first turn so the script can be replayed."""
        self._call_count = 0


def parse_replay_script(data: Any) -> Dict[AgentId, List[ScriptedTurn]]:
    """Validate replay data mapping ``A`` and ``B`` to lists of turns."""
    if not isinstance(data, dict):
        raise RuntimeScriptError("Replay script must map agent ids A and B to lists of turns")

    script: Dict[AgentId, List[ScriptedTurn]] = {}
    for agent_id in (AgentId.A, AgentId.B):
        turns = data.get(agent_id.value)
        if not isinstance(turns, list):
            raise RuntimeScriptError(f"Replay script has no turn list for agent {agent_id.value}")
        try:
            script[agent_id] = [_coerce_turn(turn) for turn in turns]
        except ValidationError as e:
            raise RuntimeScriptError(f"Invalid turn for agent {agent_id.value}: {e}")
    return script


def load_replay_script(path: str) -> Dict[AgentId, List[ScriptedTurn]]:
    """Load a YAML or JSON replay script from disk."""
    script_file = Path(path).expanduser()
    try:
        with open(script_file, 'r') as f:
            if script_file.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except OSError as e:
        raise RuntimeScriptError(f"Could not read replay script {script_file}: {e}")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise RuntimeScriptError(f"Could not parse replay script {script_file}: {e}")

    script = parse_replay_script(data)
    logger.info(
        f"Loaded replay script {script_file}: {len(script[AgentId.A])} turns for A, {len(script[AgentId.B])} for B"
    )
    return script


def replay_runtime_factory(script: Dict[AgentId, List[ScriptedTurn]]) -> RuntimeFactory:
    """Runtime factory that hands each worker its scripted turns."""

    def factory(agent_id: AgentId, model_spec: ModelSpec, cwd: str) -> BaseModelRuntime:
        return ScriptedRuntime(script[AgentId(agent_id)])

    return factory
