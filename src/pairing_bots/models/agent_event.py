"""Live events emitted by a model runtime during one invocation."""

from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class StopReason(str, Enum):
    """Terminal reason reported on an assistant message."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_USE = "tool_use"
    ERROR = "error"
    ABORTED = "aborted"


FAILED_STOP_REASONS = frozenset({StopReason.ERROR, StopReason.ABORTED})


class MessageRole(str, Enum):
    """Message role enumeration."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


class AssistantMessage(BaseModel):
    """Final assistant message of an invocation."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(default="", description="Concatenated text parts")
    stop_reason: StopReason = Field(default=StopReason.STOP, description="Why generation stopped")
    error_message: Optional[str] = Field(None, description="Provider error message, if any")

    @property
    def failed(self) -> bool:
        return self.stop_reason in FAILED_STOP_REASONS


class _AgentEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class AgentStart(_AgentEventBase):
    type: Literal["agent_start"] = "agent_start"


class AgentEnd(_AgentEventBase):
    type: Literal["agent_end"] = "agent_end"


class TurnStart(_AgentEventBase):
    type: Literal["turn_start"] = "turn_start"


class TurnEnd(_AgentEventBase):
    type: Literal["turn_end"] = "turn_end"
    tool_results: int = Field(default=0, ge=0)
    role: MessageRole = MessageRole.ASSISTANT
    stop_reason: Optional[StopReason] = None
    error_message: Optional[str] = None


class MessageStart(_AgentEventBase):
    type: Literal["message_start"] = "message_start"
    role: MessageRole = MessageRole.ASSISTANT
    stop_reason: Optional[StopReason] = None
    error_message: Optional[str] = None


class MessageEnd(_AgentEventBase):
    type: Literal["message_end"] = "message_end"
    role: MessageRole = MessageRole.ASSISTANT
    stop_reason: Optional[StopReason] = None
    error_message: Optional[str] = None


class MessageUpdate(_AgentEventBase):
    type: Literal["message_update"] = "message_update"
    assistant_event_type: str = "text_delta"


class ToolExecutionStart(_AgentEventBase):
    """A tool call is about to run; args are whatever the model supplied."""

    type: Literal["tool_execution_start"] = "tool_execution_start"
    tool_call_id: str
    tool_name: str
    args: Any = None


class ToolExecutionEnd(_AgentEventBase):
    """A tool call finished."""

    type: Literal["tool_execution_end"] = "tool_execution_end"
    tool_call_id: str
    tool_name: str
    is_error: bool = False
    result: Any = None


AgentEvent = Annotated[
    Union[
        AgentStart,
        AgentEnd,
        TurnStart,
        TurnEnd,
        MessageStart,
        MessageEnd,
        MessageUpdate,
        ToolExecutionStart,
        ToolExecutionEnd,
    ],
    Field(discriminator="type"),
]

_agent_event_adapter = TypeAdapter(AgentEvent)


def parse_agent_event(data: Dict[str, Any]) -> AgentEvent:
    """Validate a plain mapping (e.g. from a replay script) into an event."""
    return _agent_event_adapter.validate_python(data)
