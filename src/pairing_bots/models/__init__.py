"""Data models for pairing runs."""

from pairing_bots.models.agent_event import (
    AgentEnd,
    AgentEvent,
    AgentStart,
    AssistantMessage,
    MessageEnd,
    MessageRole,
    MessageStart,
    MessageUpdate,
    StopReason,
    ToolExecutionEnd,
    ToolExecutionStart,
    TurnEnd,
    TurnStart,
    parse_agent_event,
)
from pairing_bots.models.pair_config import (
    SYSTEM_ACTOR,
    AgentId,
    AlternateEachRound,
    EventStreamMode,
    EveryNCallsPause,
    ExecutionMode,
    ModelSpec,
    NoPause,
    PairAgentConfig,
    PairRole,
    PauseStrategy,
    StickyUntilSignoff,
    ThinkingLevel,
    TurnPolicy,
    WorkspaceMode,
    other_agent,
)
from pairing_bots.models.protocol_messages import (
    Decision,
    DriverDecision,
    DriverRecommendation,
    DriverReport,
    DriverStatus,
    FinalReview,
    JointSynthesis,
    JointVerdict,
    NavigatorReview,
)
from pairing_bots.models.run_result import (
    ContributionSummary,
    ObservabilitySummary,
    PairRunResult,
    RoundResult,
    RunSummary,
    SharedEntry,
    TrackerSnapshot,
)

__all__ = [
    "AgentEnd",
    "AgentEvent",
    "AgentId",
    "AgentStart",
    "AlternateEachRound",
    "AssistantMessage",
    "ContributionSummary",
    "Decision",
    "DriverDecision",
    "DriverRecommendation",
    "DriverReport",
    "DriverStatus",
    "EventStreamMode",
    "EveryNCallsPause",
    "ExecutionMode",
    "FinalReview",
    "JointSynthesis",
    "JointVerdict",
    "MessageEnd",
    "MessageRole",
    "MessageStart",
    "MessageUpdate",
    "ModelSpec",
    "NavigatorReview",
    "NoPause",
    "ObservabilitySummary",
    "PairAgentConfig",
    "PairRole",
    "PairRunResult",
    "PauseStrategy",
    "RoundResult",
    "RunSummary",
    "SYSTEM_ACTOR",
    "SharedEntry",
    "StickyUntilSignoff",
    "StopReason",
    "ThinkingLevel",
    "ToolExecutionEnd",
    "ToolExecutionStart",
    "TrackerSnapshot",
    "TurnEnd",
    "TurnPolicy",
    "TurnStart",
    "WorkspaceMode",
    "other_agent",
    "parse_agent_event",
]
