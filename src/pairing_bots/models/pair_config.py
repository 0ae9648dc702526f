"""PairAgentConfig model with pause strategy and turn policy variants."""

from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentId(str, Enum):
    """Identity of one of the two paired workers."""

    A = "A"
    B = "B"


SYSTEM_ACTOR = "system"


def other_agent(agent_id: AgentId) -> AgentId:
    """Return the counterpart of the given agent."""
    return AgentId.B if AgentId(agent_id) == AgentId.A else AgentId.A


class PairRole(str, Enum):
    """Role a worker holds for the current step."""

    DRIVER = "driver"
    NAVIGATOR = "navigator"


class ThinkingLevel(str, Enum):
    """Reasoning effort level, ordered from lowest to highest."""

    OFF = "off"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


class ExecutionMode(str, Enum):
    """Session execution strategy."""

    PAIRED_TURNS = "paired_turns"
    SOLO_DRIVER_THEN_REVIEWER = "solo_driver_then_reviewer"


class WorkspaceMode(str, Enum):
    """How the working directory is supplied to the workers."""

    DIRECT = "direct"
    EPHEMERAL_COPY = "ephemeral_copy"


class EventStreamMode(str, Enum):
    """Verbosity of the JSONL event stream."""

    COMPACT = "compact"
    FULL = "full"


class ModelSpec(BaseModel):
    """Provider, model identifier and reasoning effort for one worker."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    provider: str = Field(..., description="Model provider name")
    model_id: str = Field(..., description="Provider-specific model identifier")
    thinking_level: ThinkingLevel = Field(default=ThinkingLevel.HIGH, description="Reasoning effort")

    @field_validator('provider', 'model_id')
    @classmethod
    def validate_not_empty(cls, v):
        """Validate identifiers are not empty."""
        if not v.strip():
            raise ValueError("model identifiers cannot be empty")
        return v.strip()

    def label(self) -> str:
        return f"{self.provider}/{self.model_id} ({self.thinking_level.value})"


class NoPause(BaseModel):
    """Never pause the driver automatically."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["none"] = "none"


class EveryNCallsPause(BaseModel):
    """Pause the driver after every N successful counted tool calls."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["every_n_file_edits"] = "every_n_file_edits"
    edits_per_pause: int = Field(default=3, ge=1, description="Counted calls between checkpoints")
    counted_tools: List[str] = Field(
        default_factory=lambda: ["edit", "write"],
        min_length=1,
        description="Tool names that advance the checkpoint counter"
    )


PauseStrategy = Annotated[Union[NoPause, EveryNCallsPause], Field(discriminator="mode")]


class AlternateEachRound(BaseModel):
    """Swap the driver after every round."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["alternate_each_round"] = "alternate_each_round"


class StickyUntilSignoff(BaseModel):
    """Keep the driver until the navigator asks for a handoff or a safety cap is hit."""

    model_config = ConfigDict(frozen=True)

    mode: Literal["same_driver_until_navigator_signoff"] = "same_driver_until_navigator_signoff"
    max_consecutive_rounds: int = Field(default=3, ge=1, description="Rounds before a forced swap")
    max_consecutive_checkpoints: int = Field(default=4, ge=1, description="Checkpoints before a forced swap")


TurnPolicy = Annotated[Union[AlternateEachRound, StickyUntilSignoff], Field(discriminator="mode")]


def default_model_a() -> ModelSpec:
    return ModelSpec(provider="anthropic", model_id="claude-opus-4-6", thinking_level=ThinkingLevel.HIGH)


def default_model_b() -> ModelSpec:
    return ModelSpec(provider="openai", model_id="gpt-5.2-codex", thinking_level=ThinkingLevel.HIGH)


class PairAgentConfig(BaseModel):
    """
    Complete configuration of one pairing run.

    Immutable for the duration of a run; the CLI builds a fresh copy per run.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_a: ModelSpec = Field(default_factory=default_model_a, description="Model behind worker A")
    model_b: ModelSpec = Field(default_factory=default_model_b, description="Model behind worker B")
    cwd: str = Field(..., description="Working directory handed to both workers")
    max_rounds: int = Field(default=8, ge=1, description="Upper bound on implementation rounds")
    driver_starts_as: AgentId = Field(default=AgentId.A, description="Driver of the first round")
    pause_strategy: PauseStrategy = Field(default_factory=EveryNCallsPause, description="Checkpoint cadence")
    turn_policy: TurnPolicy = Field(default_factory=StickyUntilSignoff, description="Driver persistence policy")
    execution_mode: ExecutionMode = Field(default=ExecutionMode.PAIRED_TURNS, description="Session strategy")

    @field_validator('cwd')
    @classmethod
    def validate_cwd(cls, v):
        """Validate working directory is not empty."""
        if not v.strip():
            raise ValueError("cwd cannot be empty")
        return v

    def model_for(self, agent_id: AgentId) -> ModelSpec:
        return self.model_a if AgentId(agent_id) == AgentId.A else self.model_b
