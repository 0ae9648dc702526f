"""
Tagged protocol parsing for worker responses.

Every parse function is total: a missing or garbled tag falls back to a
fixed default instead of raising.
"""

import re
from typing import Optional

from pairing_bots.models.protocol_messages import (
    Decision,
    DriverDecision,
    DriverRecommendation,
    DriverReport,
    DriverStatus,
    JointSynthesis,
    JointVerdict,
    NavigatorReview,
)


NONE_TOKEN = "NONE"
MISSING_CHANGES = "(driver did not provide a structured changes section)"
MISSING_REFLECTION = "(no private reflection provided)"

_TRAILING_PUNCTUATION = re.compile(r"[.!]+$")


def extract_tag(text: str, tag: str) -> Optional[str]:
    """Return the stripped content of the first ``<tag>...</tag>`` block, or None."""
    pattern = re.compile(rf"<{re.escape(tag)}>(.*?)</{re.escape(tag)}>", re.IGNORECASE | re.DOTALL)
    match = pattern.search(text)
    if match is None:
        return None
    return match.group(1).strip()


def is_none_token(text: str) -> bool:
    """True when text reads as NONE, ignoring case, whitespace and trailing . or !"""
    normalized = _TRAILING_PUNCTUATION.sub("", text.strip().upper())
    return normalized == NONE_TOKEN


def parse_tagged_block(text: str, tag: str) -> str:
    """Tag content when present, otherwise the whole response stripped."""
    content = extract_tag(text, tag)
    return content if content is not None else text.strip()


def parse_driver_report(raw: str) -> DriverReport:
    status_raw = (extract_tag(raw, "status") or "").lower()
    summary = extract_tag(raw, "summary")
    changes = extract_tag(raw, "changes")
    questions = extract_tag(raw, "questions_for_navigator")

    return DriverReport(
        status=DriverStatus.DONE if status_raw == DriverStatus.DONE.value else DriverStatus.CONTINUE,
        summary=summary if summary is not None else raw.strip(),
        changes=changes if changes is not None else MISSING_CHANGES,
        questions_for_navigator=questions if questions is not None else NONE_TOKEN,
        raw=raw,
    )


def parse_navigator_review(raw: str) -> NavigatorReview:
    reflection = extract_tag(raw, "private_reflection")
    feedback = extract_tag(raw, "public_feedback")
    if feedback is None:
        feedback = NONE_TOKEN
    recommendation_raw = (extract_tag(raw, "driver_recommendation") or "").lower()

    if recommendation_raw == DriverRecommendation.HANDOFF.value:
        recommendation = DriverRecommendation.HANDOFF
    else:
        recommendation = DriverRecommendation.CONTINUE

    return NavigatorReview(
        private_reflection=reflection if reflection is not None else MISSING_REFLECTION,
        public_feedback=feedback,
        has_feedback=not is_none_token(feedback),
        driver_recommendation=recommendation,
        raw=raw,
    )


def parse_driver_decision(raw: str) -> DriverDecision:
    decision_raw = (extract_tag(raw, "decision") or "").lower()
    justification = extract_tag(raw, "justification")

    if decision_raw in (Decision.ACCEPT.value, Decision.REJECT.value):
        decision = Decision(decision_raw)
    else:
        decision = Decision.PARTIAL

    return DriverDecision(
        decision=decision,
        justification=justification if justification is not None else raw.strip(),
        raw=raw,
    )


def parse_joint_verdict(raw: str) -> JointSynthesis:
    verdict_raw = (extract_tag(raw, "joint_verdict") or "").upper()
    rationale = extract_tag(raw, "rationale")
    next_steps = extract_tag(raw, "next_steps")

    if verdict_raw == JointVerdict.APPROVED.value:
        verdict = JointVerdict.APPROVED
    else:
        verdict = JointVerdict.NEEDS_MORE_WORK

    return JointSynthesis(
        joint_verdict=verdict,
        rationale=rationale if rationale is not None else raw.strip(),
        next_steps=next_steps if next_steps is not None else NONE_TOKEN,
        raw=raw,
    )
