"""Round results, contribution summaries and the persisted run artifact."""

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pairing_bots.models.pair_config import AgentId, EventStreamMode, ExecutionMode, SYSTEM_ACTOR
from pairing_bots.models.protocol_messages import DriverDecision, DriverReport, FinalReview, NavigatorReview


class SharedEntry(BaseModel):
    """
    One entry of the shared journal.

    The journal is append-only and visible to both workers; entries are never
    mutated once appended.
    """

    model_config = ConfigDict(frozen=True)

    stage: str = Field(..., description="Protocol stage that produced the entry")
    actor: str = Field(..., description="A, B or system")
    content: str = Field(..., description="Entry text")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="When the entry was appended")

    @field_validator('actor')
    @classmethod
    def validate_actor(cls, v):
        """Validate actor is a worker id or the system."""
        if v not in (AgentId.A.value, AgentId.B.value, SYSTEM_ACTOR):
            raise ValueError(f"Unknown actor: {v}")
        return v

    def render(self) -> str:
        return "\n".join([
            f"Stage: {self.stage}",
            f"Actor: {self.actor}",
            f"Timestamp: {self.timestamp.isoformat()}",
            self.content,
        ])


class TrackerSnapshot(BaseModel):
    """Point-in-time view of the execution tracker's counters."""

    model_config = ConfigDict(frozen=True)

    pause_triggered: bool = False
    checkpoint_count: int = Field(default=0, ge=0)
    edit_write_call_count: int = Field(default=0, ge=0)
    estimated_written_bytes: int = Field(default=0, ge=0)


class RoundResult(BaseModel):
    """Everything one driver/navigator round produced."""

    model_config = ConfigDict(frozen=True)

    round: int = Field(..., ge=1)
    driver: AgentId
    navigator: AgentId
    pause_triggered: bool
    checkpoint_count: int = Field(..., ge=0)
    edit_write_call_count: int = Field(..., ge=0)
    estimated_written_bytes: int = Field(..., ge=0)
    driver_report: DriverReport
    navigator_review: NavigatorReview
    driver_decision: Optional[DriverDecision] = None
    driving_phase: Optional[TrackerSnapshot] = Field(
        None, description="Tracker snapshot taken before the navigator review"
    )

    @field_validator('navigator')
    @classmethod
    def validate_distinct_roles(cls, v, info):
        """Driver and navigator are always the two distinct identities."""
        if info.data.get('driver') == v:
            raise ValueError("driver and navigator must be different agents")
        return v


class ContributionSummary(BaseModel):
    """Per-agent rough contribution counters."""

    agent: AgentId
    estimated_written_bytes: int = Field(default=0, ge=0)
    edit_write_call_count: int = Field(default=0, ge=0)
    rounds_driven: int = Field(default=0, ge=0)
    checkpoints_while_driving: int = Field(default=0, ge=0)
    rough_code_share_percent: float = Field(default=0.0, ge=0.0, le=100.0)

    def add_round(self, result: RoundResult) -> None:
        self.rounds_driven += 1
        self.checkpoints_while_driving += result.checkpoint_count
        self.edit_write_call_count += result.edit_write_call_count
        self.estimated_written_bytes += result.estimated_written_bytes


class RunSummary(BaseModel):
    """Aggregate counters of a completed run."""

    checkpoint_count: int = Field(default=0, ge=0)
    swap_count: int = Field(default=0, ge=0)
    total_estimated_written_bytes: int = Field(default=0, ge=0)
    contributions: Dict[AgentId, ContributionSummary]


class ObservabilitySummary(BaseModel):
    """Aggregate counts returned by the session observer on flush."""

    log_file: str
    event_stream_file: Optional[str] = None
    event_stream_mode: EventStreamMode = EventStreamMode.COMPACT
    event_stream_write_error: Optional[str] = None
    log_write_error: Optional[str] = None
    event_count: int = 0
    prompt_count: int = 0
    tool_execution_count: int = 0
    tool_execution_error_count: int = 0
    duration_ms: int = 0


class PairRunResult(BaseModel):
    """Persisted artifact of a completed pairing run."""

    status: Literal["completed"] = "completed"
    execution_mode: ExecutionMode = ExecutionMode.PAIRED_TURNS
    task: str
    agreed_plan: str
    rounds: List[RoundResult] = Field(default_factory=list)
    final_review: FinalReview
    summary: RunSummary
    shared_journal: List[SharedEntry] = Field(default_factory=list)
    observability: Optional[ObservabilitySummary] = None
