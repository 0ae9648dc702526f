"""Prompt texts for each step of the pairing protocol."""

from pairing_bots.models.pair_config import (
    AgentId,
    AlternateEachRound,
    NoPause,
    PauseStrategy,
    TurnPolicy,
)


DRIVING_PHASE = "driving"
FEEDBACK_RESOLUTION_PHASE = "feedback_resolution"

_DRIVER_REPORT_TAGS = [
    "<status>continue|done</status>",
    "<summary>Short progress summary.</summary>",
    "<changes>Files changed and what changed.</changes>",
    "<questions_for_navigator>Specific review asks, or NONE.</questions_for_navigator>",
]

_NAVIGATOR_REVIEW_TAGS = [
    "<private_reflection>Your private internal notes.</private_reflection>",
    "<public_feedback>Actionable feedback for driver, or NONE.</public_feedback>",
    "<driver_recommendation>continue|handoff</driver_recommendation>",
]

_PLAN_GUIDANCE = "Create an implementation plan with ordered steps, key risks, and explicit test/validation steps."


def _lines(*parts) -> str:
    return "\n".join(parts)


def _agent(agent_id) -> str:
    return AgentId(agent_id).value


def build_system_prompt(agent_id: AgentId) -> str:
    return _lines(
        f"You are Model {_agent(agent_id)} in a two-model pair-programming coding workflow.",
        "Your primary objective is high-quality, testable, maintainable code.",
        "Protocol:",
        "1. Respect the current role (driver or navigator) for each turn.",
        "2. Driver can edit code; navigator should inspect and critique.",
        "3. If you receive [PRIVATE MEMORY], treat it as your internal notes and do not reveal it unless explicitly requested.",
        "4. If you receive [SHARED CONTEXT], assume the other model can also see it.",
        "5. When asked for tagged output, emit every required tag exactly once.",
        "6. Be concrete: reference files, risks, and testing implications.",
    )


def describe_pause_strategy(strategy: PauseStrategy) -> str:
    if isinstance(strategy, NoPause):
        return "No automatic pause. Driver decides when to hand off."
    counted = ", ".join(strategy.counted_tools)
    return (
        f"Automatically pause after {strategy.edits_per_pause} edit/write tool calls "
        f"(counted tools: {counted})."
    )


def describe_turn_policy(policy: TurnPolicy) -> str:
    if isinstance(policy, AlternateEachRound):
        return "Driver changes every round."
    return (
        "Driver stays the same until navigator recommends handoff. "
        f"Safety caps: max {policy.max_consecutive_rounds} consecutive rounds or "
        f"{policy.max_consecutive_checkpoints} consecutive checkpoints before forced swap."
    )


def build_plan_draft_prompt(task: str) -> str:
    return _lines(
        f"Task: {task}",
        "You are starting the planning handshake as Model A.",
        _PLAN_GUIDANCE,
        "Return exactly:",
        "<plan_draft>",
        "...",
        "</plan_draft>",
    )


def build_plan_critique_prompt(task: str, draft: str) -> str:
    return _lines(
        f"Task: {task}",
        "Review Model A's draft plan.",
        "Identify gaps, incorrect assumptions, sequencing issues, and missing tests.",
        "If plan is strong, keep feedback short.",
        "Draft plan:",
        draft,
        "Return exactly:",
        "<plan_feedback>",
        "...",
        "</plan_feedback>",
    )


def build_plan_revision_prompt(task: str, draft: str, critique: str) -> str:
    return _lines(
        f"Task: {task}",
        "Revise the plan after considering Model B's critique.",
        "For each major critique, either incorporate it or explain why not.",
        "Original draft:",
        draft,
        "Critique:",
        critique,
        "Return exactly:",
        "<agreed_plan>",
        "...",
        "</agreed_plan>",
    )


def build_solo_plan_prompt(task: str) -> str:
    return _lines(
        f"Task: {task}",
        "You are Model A and should produce the final implementation plan directly.",
        _PLAN_GUIDANCE,
        "Return exactly:",
        "<agreed_plan>",
        "...",
        "</agreed_plan>",
    )


def build_driver_turn_prompt(
    *,
    task: str,
    agreed_plan: str,
    round_number: int,
    driver: AgentId,
    navigator: AgentId,
    pause_description: str,
    turn_policy_description: str,
) -> str:
    return _lines(
        f"Task: {task}",
        f"Round: {round_number}",
        f"You are Model {_agent(driver)} acting as DRIVER. Model {_agent(navigator)} is NAVIGATOR.",
        "Implement the next meaningful chunk of work from the agreed plan.",
        "Use tools as needed. Keep scope tight and leave a clear handoff.",
        f"Pause policy: {pause_description}",
        f"Turn policy: {turn_policy_description}",
        "Agreed plan:",
        agreed_plan,
        "At the end of this turn, return exactly:",
        *_DRIVER_REPORT_TAGS,
    )


def build_solo_driver_turn_prompt(
    *,
    task: str,
    agreed_plan: str,
    driver: AgentId,
    reviewer: AgentId,
    pause_description: str,
) -> str:
    return _lines(
        f"Task: {task}",
        f"You are Model {_agent(driver)} acting as DRIVER. "
        f"Model {_agent(reviewer)} will review after your implementation pass.",
        "Implement the task end-to-end before handing off to reviewer.",
        "Do not pause to request intermediate navigator feedback.",
        f"Pause policy metric context: {pause_description}",
        "Agreed plan:",
        agreed_plan,
        "At the end of implementation, return exactly:",
        *_DRIVER_REPORT_TAGS,
    )


def build_pause_interruption_prompt(navigator: AgentId, phase: str = DRIVING_PHASE) -> str:
    """Steering message injected into the driver when a checkpoint fires."""
    if phase == FEEDBACK_RESOLUTION_PHASE:
        return _lines(
            "Pause now due to checkpoint policy.",
            f"Model {_agent(navigator)} is observing this checkpoint.",
            "Stop additional edits in this turn and complete your current required output format.",
        )
    return _lines(
        "Pause now due to checkpoint policy.",
        f"Prepare an immediate handoff for Model {_agent(navigator)}.",
        "Stop additional edits in this turn and emit the required tagged report.",
    )


def build_navigator_review_prompt(
    *,
    task: str,
    agreed_plan: str,
    round_number: int,
    driver: AgentId,
    driver_report: str,
    pause_triggered: bool,
    turn_policy_description: str,
) -> str:
    return _lines(
        f"Task: {task}",
        f"Round: {round_number}",
        f"You are NAVIGATOR reviewing Model {_agent(driver)}'s driving turn.",
        "Focus on correctness bugs, regressions, weak assumptions, missed edge cases, and refactor opportunities.",
        "You may use read-only tools to inspect current files.",
        f"Checkpoint pause triggered: {'yes' if pause_triggered else 'no'}.",
        f"Turn policy: {turn_policy_description}",
        "Agreed plan:",
        agreed_plan,
        "Driver report:",
        driver_report,
        "Return exactly:",
        *_NAVIGATOR_REVIEW_TAGS,
        "Use 'handoff' only if you think roles should swap after this round.",
    )


def build_solo_navigator_review_prompt(
    *,
    task: str,
    agreed_plan: str,
    driver: AgentId,
    reviewer: AgentId,
    driver_report: str,
    checkpoint_count: int,
) -> str:
    return _lines(
        f"Task: {task}",
        f"You are Model {_agent(reviewer)} reviewing Model {_agent(driver)}'s full implementation pass.",
        "Focus on bugs, regressions, weak assumptions, missed edge cases, and refactor opportunities.",
        "You may use read-only tools to inspect current files.",
        f"Checkpoint count during implementation: {checkpoint_count}.",
        "Agreed plan:",
        agreed_plan,
        "Driver report:",
        driver_report,
        "Return exactly:",
        *_NAVIGATOR_REVIEW_TAGS,
        "Use 'handoff' if you believe the other model should drive next in a follow-up session.",
    )


def build_driver_decision_prompt(feedback: str) -> str:
    return _lines(
        "Navigator feedback received.",
        "Decide whether to accept, partially accept, or reject it.",
        "If accepting/partial, make any required edits before replying.",
        "Navigator feedback:",
        feedback,
        "Return exactly:",
        "<decision>accept|partial|reject</decision>",
        "<justification>Why you made this decision, with technical rationale.</justification>",
    )


def build_final_review_prompt(task: str, agreed_plan: str) -> str:
    return _lines(
        f"Task: {task}",
        "Perform final quality review of the current workspace state against the agreed plan.",
        "Call out remaining risk, missing tests, and any last improvements.",
        "Agreed plan:",
        agreed_plan,
        "Return exactly:",
        "<private_reflection>Your private quality notes.</private_reflection>",
        "<public_feedback>Final public review, or NONE if no issues remain.</public_feedback>",
    )


def build_joint_synthesis_prompt(review_a: str, review_b: str) -> str:
    return _lines(
        "Synthesize a joint final decision across both model reviews.",
        "Review from Model A:",
        review_a,
        "Review from Model B:",
        review_b,
        "Return exactly:",
        "<joint_verdict>APPROVED|NEEDS_MORE_WORK</joint_verdict>",
        "<rationale>Why this verdict is correct.</rationale>",
        "<next_steps>If NEEDS_MORE_WORK, list exact next actions. If APPROVED, write NONE.</next_steps>",
    )
