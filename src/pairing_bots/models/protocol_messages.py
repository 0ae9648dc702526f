"""Structured artifacts parsed from tagged worker responses."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DriverStatus(str, Enum):
    """Driver's own assessment of the task at the end of a turn."""

    CONTINUE = "continue"
    DONE = "done"


class DriverRecommendation(str, Enum):
    """Navigator's recommendation on who drives next."""

    CONTINUE = "continue"
    HANDOFF = "handoff"


class Decision(str, Enum):
    """Driver's response to navigator feedback."""

    ACCEPT = "accept"
    PARTIAL = "partial"
    REJECT = "reject"


class JointVerdict(str, Enum):
    """Terminal verdict of the session."""

    APPROVED = "APPROVED"
    NEEDS_MORE_WORK = "NEEDS_MORE_WORK"


class DriverReport(BaseModel):
    """Report produced once per driving turn."""

    model_config = ConfigDict(frozen=True)

    status: DriverStatus = Field(default=DriverStatus.CONTINUE, description="continue or done")
    summary: str = Field(..., description="Short progress summary")
    changes: str = Field(..., description="Files changed and what changed")
    questions_for_navigator: str = Field(default="NONE", description="Specific review asks")
    raw: str = Field(..., description="Untouched response text")


class NavigatorReview(BaseModel):
    """Review produced by the navigator after a driving turn or at final review."""

    model_config = ConfigDict(frozen=True)

    private_reflection: str = Field(..., description="Notes kept in the navigator's private memory")
    public_feedback: str = Field(default="NONE", description="Feedback visible to both workers")
    has_feedback: bool = Field(..., description="False iff the public feedback is the NONE token")
    driver_recommendation: DriverRecommendation = Field(
        default=DriverRecommendation.CONTINUE,
        description="Whether roles should swap after this round"
    )
    raw: str = Field(..., description="Untouched response text")


class DriverDecision(BaseModel):
    """Driver's decision on navigator feedback."""

    model_config = ConfigDict(frozen=True)

    decision: Decision = Field(default=Decision.PARTIAL, description="accept, partial or reject")
    justification: str = Field(..., description="Technical rationale")
    raw: str = Field(..., description="Untouched response text")


class JointSynthesis(BaseModel):
    """Verdict portion of the final review."""

    model_config = ConfigDict(frozen=True)

    joint_verdict: JointVerdict = Field(default=JointVerdict.NEEDS_MORE_WORK)
    rationale: str
    next_steps: str = "NONE"
    raw: str


class FinalReview(BaseModel):
    """Terminal artifact of the session."""

    model_config = ConfigDict(frozen=True)

    review_a: NavigatorReview
    review_b: NavigatorReview
    joint_verdict: JointVerdict
    rationale: str
    next_steps: str
    raw: str = ""

    @classmethod
    def from_synthesis(
        cls,
        review_a: NavigatorReview,
        review_b: NavigatorReview,
        synthesis: JointSynthesis,
        raw: Optional[str] = None
    ) -> "FinalReview":
        return cls(
            review_a=review_a,
            review_b=review_b,
            joint_verdict=synthesis.joint_verdict,
            rationale=synthesis.rationale,
            next_steps=synthesis.next_steps,
            raw=synthesis.raw if raw is None else raw,
        )
