"""
Session orchestrator for two-model pair programming.

Runs planning, the round loop under the turn policy, the final joint review
and the contribution summary. The orchestrator is the only writer of the
shared journal; workers receive rendered copies of each entry in append
order.
"""

import logging
import math
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional

from pairing_bots.lib.logging_config import AuditLogger, get_audit_logger
from pairing_bots.lib.metrics import PairMetrics
from pairing_bots.lib.observability import get_tracer
from pairing_bots.models.agent_event import AgentEvent
from pairing_bots.models.pair_config import (
    SYSTEM_ACTOR,
    AgentId,
    ExecutionMode,
    PairAgentConfig,
    PairRole,
    other_agent,
)
from pairing_bots.models.protocol_messages import (
    Decision,
    DriverStatus,
    FinalReview,
    JointSynthesis,
    JointVerdict,
)
from pairing_bots.models.run_result import (
    ContributionSummary,
    PairRunResult,
    RoundResult,
    RunSummary,
    SharedEntry,
)
from pairing_bots.services.model_worker import ModelWorker
from pairing_bots.services.prompt_builder import (
    build_final_review_prompt,
    build_joint_synthesis_prompt,
    build_plan_critique_prompt,
    build_plan_draft_prompt,
    build_plan_revision_prompt,
    build_solo_plan_prompt,
)
from pairing_bots.services.protocol_parser import (
    NONE_TOKEN,
    parse_joint_verdict,
    parse_navigator_review,
    parse_tagged_block,
)
from pairing_bots.services.round_engine import RoundEngine, RoundStyle
from pairing_bots.services.session_observer import SessionObserver
from pairing_bots.services.turn_policy import decide_driver_swap


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _round_percent(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def build_run_summary(
    contributions: Dict[AgentId, ContributionSummary],
    checkpoint_count: int,
    swap_count: int,
) -> RunSummary:
    """Compute rough code shares and wrap the accumulated counters.

    Shares follow estimated bytes when any were written, otherwise rounds
    driven; both agents get 0 when neither total is positive.
    """
    a, b = contributions[AgentId.A], contributions[AgentId.B]
    total_bytes = a.estimated_written_bytes + b.estimated_written_bytes
    total_rounds = a.rounds_driven + b.rounds_driven

    for contribution in (a, b):
        if total_bytes > 0:
            share = contribution.estimated_written_bytes / total_bytes * 100
        elif total_rounds > 0:
            share = contribution.rounds_driven / total_rounds * 100
        else:
            share = 0.0
        contribution.rough_code_share_percent = _round_percent(share)

    return RunSummary(
        checkpoint_count=checkpoint_count,
        swap_count=swap_count,
        total_estimated_written_bytes=total_bytes,
        contributions={AgentId.A: a, AgentId.B: b},
    )


class PairOrchestrator:
    """Coordinates two workers through one pairing run."""

    def __init__(
        self,
        config: PairAgentConfig,
        workers: Mapping[AgentId, ModelWorker],
        observer: Optional[SessionObserver] = None,
        metrics: Optional[PairMetrics] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Run configuration
            workers: Worker for each of A and B
            observer: Optional observability trail, flushed when the run ends
            metrics: Optional OpenTelemetry instruments
            audit_logger: Audit logger for lifecycle events
            clock: Timestamp source for journal entries
        """
        missing = {AgentId.A, AgentId.B} - set(workers)
        if missing:
            raise ValueError(f"Workers missing for: {', '.join(sorted(m.value for m in missing))}")

        self.config = config
        self.workers = workers
        self.observer = observer
        self.metrics = metrics
        self.audit_logger = audit_logger or get_audit_logger()
        self.clock = clock or _utc_now

        self.shared_journal: List[SharedEntry] = []
        self.round_engine = RoundEngine(config, workers, self._run_prompt, self._broadcast)

    def _record(self, category: str, name: str, **kwargs) -> None:
        if self.observer is not None:
            self.observer.record(category, name, **kwargs)

    async def _run_prompt(
        self,
        actor: AgentId,
        prompt: str,
        *,
        prompt_kind: str,
        phase: str,
        round_number: Optional[int] = None,
        on_event: Optional[Callable[[AgentEvent], None]] = None,
    ) -> str:
        worker = self.workers[actor]
        observer = self.observer

        if observer is not None:
            observer.record_prompt_start(actor, phase, prompt_kind, prompt, round=round_number)

        def handle_event(event: AgentEvent) -> None:
            if observer is not None:
                observer.record_agent_event(actor, phase, event, round=round_number)
            if on_event is not None:
                on_event(event)

        attributes = {"pair.actor": AgentId(actor).value, "pair.prompt_kind": prompt_kind, "pair.phase": phase}
        if round_number is not None:
            attributes["pair.round"] = round_number

        timer = self.metrics.time_prompt(AgentId(actor).value, prompt_kind) if self.metrics else nullcontext()
        with get_tracer().start_as_current_span("pair.prompt", attributes=attributes):
            with timer:
                response = await worker.run_prompt(prompt, on_event=handle_event)

        if observer is not None:
            observer.record_prompt_end(actor, phase, prompt_kind, response, round=round_number)
        return response

    def _broadcast(self, stage: str, actor: str, content: str) -> None:
        entry = SharedEntry(stage=stage, actor=actor, content=content, timestamp=self.clock())
        self.shared_journal.append(entry)
        rendered = entry.render()
        for agent_id in (AgentId.A, AgentId.B):
            self.workers[agent_id].append_shared_context(rendered)

    def _set_all_roles(self, role: PairRole) -> None:
        for agent_id in (AgentId.A, AgentId.B):
            self.workers[agent_id].set_role(role)

    async def _collaborative_planning(self, task: str) -> str:
        # No worker edits files while the plan is negotiated.
        self._set_all_roles(PairRole.NAVIGATOR)

        draft = parse_tagged_block(
            await self._run_prompt(AgentId.A, build_plan_draft_prompt(task), prompt_kind="plan_draft", phase="planning"),
            "plan_draft",
        )
        self._broadcast("plan_draft", AgentId.A.value, draft)

        critique = parse_tagged_block(
            await self._run_prompt(
                AgentId.B, build_plan_critique_prompt(task, draft), prompt_kind="plan_feedback", phase="planning"
            ),
            "plan_feedback",
        )
        self._broadcast("plan_feedback", AgentId.B.value, critique)

        agreed_plan = parse_tagged_block(
            await self._run_prompt(
                AgentId.A,
                build_plan_revision_prompt(task, draft, critique),
                prompt_kind="plan_revision",
                phase="planning",
            ),
            "agreed_plan",
        )
        self._broadcast("plan_agreed", AgentId.A.value, agreed_plan)
        return agreed_plan

    async def _solo_planning(self, task: str) -> str:
        self._set_all_roles(PairRole.NAVIGATOR)
        agreed_plan = parse_tagged_block(
            await self._run_prompt(AgentId.A, build_solo_plan_prompt(task), prompt_kind="solo_plan", phase="planning"),
            "agreed_plan",
        )
        self._broadcast("plan_agreed", AgentId.A.value, agreed_plan)
        return agreed_plan

    async def _run_observed_round(
        self,
        task: str,
        agreed_plan: str,
        round_number: int,
        driver_id: AgentId,
        style: RoundStyle,
    ) -> RoundResult:
        self._record(
            "orchestrator", "round_start", actor=SYSTEM_ACTOR, round=round_number,
            details={"driver": driver_id.value, "navigator": other_agent(driver_id).value},
        )

        result = await self.round_engine.run_round(task, agreed_plan, round_number, driver_id, style)

        self._record(
            "orchestrator", "round_end", actor=SYSTEM_ACTOR, round=round_number,
            details={
                "driver_status": result.driver_report.status.value,
                "navigator_has_feedback": result.navigator_review.has_feedback,
                "navigator_recommendation": result.navigator_review.driver_recommendation.value,
                "checkpoint_count": result.checkpoint_count,
                "edit_write_call_count": result.edit_write_call_count,
            },
        )
        if self.metrics is not None:
            self.metrics.record_round(driver_id.value, result.checkpoint_count, result.estimated_written_bytes)
        return result

    async def _run_paired(self, task: str):
        agreed_plan = await self._collaborative_planning(task)

        rounds: List[RoundResult] = []
        contributions = {agent_id: ContributionSummary(agent=agent_id) for agent_id in (AgentId.A, AgentId.B)}
        driver_id = AgentId(self.config.driver_starts_as)
        consecutive_rounds = 0
        consecutive_checkpoints = 0
        swap_count = 0
        checkpoint_count = 0

        for round_number in range(1, self.config.max_rounds + 1):
            result = await self._run_observed_round(task, agreed_plan, round_number, driver_id, RoundStyle.PAIRED)
            rounds.append(result)
            checkpoint_count += result.checkpoint_count
            consecutive_rounds += 1
            consecutive_checkpoints += result.checkpoint_count
            contributions[driver_id].add_round(result)

            if result.driver_report.status == DriverStatus.DONE and not result.navigator_review.has_feedback:
                self._broadcast(
                    "loop_stop",
                    SYSTEM_ACTOR,
                    f"Stopped at round {round_number} because driver signaled done and navigator had no feedback.",
                )
                break

            if round_number == self.config.max_rounds:
                self._broadcast("loop_stop", SYSTEM_ACTOR, f"Reached max rounds ({self.config.max_rounds}).")
                break

            decision = decide_driver_swap(result, consecutive_rounds, consecutive_checkpoints, self.config.turn_policy)
            if not decision.swap:
                continue

            previous_driver = driver_id
            driver_id = other_agent(driver_id)
            swap_count += 1
            consecutive_rounds = 0
            consecutive_checkpoints = 0
            self._broadcast(
                "driver_swap",
                SYSTEM_ACTOR,
                f"Swapped driver from {previous_driver.value} to {driver_id.value}. Reason: {decision.reason}.",
            )
            self._record(
                "orchestrator", "driver_swap", actor=SYSTEM_ACTOR, round=round_number,
                details={"from": previous_driver.value, "to": driver_id.value, "reason": decision.reason},
            )
            self.audit_logger.log_role_event(
                "driver_swap", round_number, previous_driver.value, driver_id.value, decision.reason
            )
            if self.metrics is not None:
                self.metrics.record_swap(decision.reason)

        final_review = await self._final_review(task, agreed_plan)
        summary = build_run_summary(contributions, checkpoint_count, swap_count)
        return agreed_plan, rounds, final_review, summary

    async def _final_review(self, task: str, agreed_plan: str) -> FinalReview:
        self._set_all_roles(PairRole.NAVIGATOR)

        prompt = build_final_review_prompt(task, agreed_plan)
        review_a = parse_navigator_review(
            await self._run_prompt(AgentId.A, prompt, prompt_kind="final_review", phase="final_review")
        )
        review_b = parse_navigator_review(
            await self._run_prompt(AgentId.B, prompt, prompt_kind="final_review", phase="final_review")
        )
        self.workers[AgentId.A].append_private_memory(review_a.private_reflection)
        self.workers[AgentId.B].append_private_memory(review_b.private_reflection)

        self._broadcast("final_review_A", AgentId.A.value, review_a.public_feedback)
        self._broadcast("final_review_B", AgentId.B.value, review_b.public_feedback)

        synthesis = parse_joint_verdict(
            await self._run_prompt(
                AgentId.A,
                build_joint_synthesis_prompt(review_a.public_feedback, review_b.public_feedback),
                prompt_kind="joint_synthesis",
                phase="final_review",
            )
        )
        self._broadcast(
            "joint_verdict",
            AgentId.A.value,
            f"Verdict: {synthesis.joint_verdict.value}\n"
            f"Rationale: {synthesis.rationale}\n"
            f"Next steps: {synthesis.next_steps}",
        )
        return FinalReview.from_synthesis(review_a, review_b, synthesis)

    async def _run_solo(self, task: str):
        agreed_plan = await self._solo_planning(task)

        driver_id, reviewer_id = AgentId.A, AgentId.B
        result = await self._run_observed_round(task, agreed_plan, 1, driver_id, RoundStyle.SOLO)
        contributions = {agent_id: ContributionSummary(agent=agent_id) for agent_id in (AgentId.A, AgentId.B)}
        contributions[driver_id].add_round(result)

        review = result.navigator_review
        accepted = result.driver_decision is not None and result.driver_decision.decision == Decision.ACCEPT
        if not review.has_feedback or accepted:
            verdict = JointVerdict.APPROVED
            next_steps = NONE_TOKEN
            rationale = (
                f"Model {reviewer_id.value} raised no feedback on the implementation pass."
                if not review.has_feedback
                else f"Model {driver_id.value} accepted Model {reviewer_id.value}'s feedback."
            )
        else:
            verdict = JointVerdict.NEEDS_MORE_WORK
            next_steps = review.public_feedback
            decision_value = result.driver_decision.decision.value if result.driver_decision else Decision.PARTIAL.value
            rationale = (
                f"Model {reviewer_id.value} raised feedback that Model {driver_id.value} "
                f"did not fully accept (decision: {decision_value})."
            )

        synthesis_text = f"Verdict: {verdict.value}\nRationale: {rationale}\nNext steps: {next_steps}"
        self._broadcast("joint_verdict", SYSTEM_ACTOR, synthesis_text)

        final_review = FinalReview.from_synthesis(
            review_a=parse_navigator_review(""),
            review_b=review,
            synthesis=JointSynthesis(
                joint_verdict=verdict, rationale=rationale, next_steps=next_steps, raw=synthesis_text
            ),
        )
        summary = build_run_summary(contributions, result.checkpoint_count, 0)
        return agreed_plan, [result], final_review, summary

    async def run(self, task: str) -> PairRunResult:
        """Run the whole session.

        Any failure aborts the run: the observer is flushed as failed and the
        original exception propagates. There is no partial result.
        """
        self.shared_journal = []
        mode = ExecutionMode(self.config.execution_mode)
        status = "completed"
        error_message: Optional[str] = None
        observability = None

        with get_tracer().start_as_current_span(
            "pair.session",
            attributes={"pair.execution_mode": mode.value, "pair.max_rounds": self.config.max_rounds},
        ):
            try:
                self._record("session", "session_start", actor=SYSTEM_ACTOR, details={
                    "task_length": len(task),
                    "max_rounds": self.config.max_rounds,
                    "execution_mode": mode.value,
                    "turn_policy": self.config.turn_policy.mode,
                    "pause_policy": self.config.pause_strategy.mode,
                })
                self.audit_logger.log_session_event("session_start", len(task), mode.value)
                self._broadcast("task", SYSTEM_ACTOR, task)

                if mode == ExecutionMode.SOLO_DRIVER_THEN_REVIEWER:
                    agreed_plan, rounds, final_review, summary = await self._run_solo(task)
                else:
                    agreed_plan, rounds, final_review, summary = await self._run_paired(task)

                self._record("session", "session_end", actor=SYSTEM_ACTOR, details={
                    "joint_verdict": final_review.joint_verdict.value,
                    "rounds": len(rounds),
                    "swap_count": summary.swap_count,
                    "checkpoint_count": summary.checkpoint_count,
                })

            except BaseException as e:
                status = "failed"
                error_message = str(e) or e.__class__.__name__
                logger.error(f"Pairing run failed: {error_message}")
                self._record("session", "session_error", actor=SYSTEM_ACTOR, details={"message": error_message})
                self.audit_logger.log_session_event("session_failed", len(task), mode.value, result=error_message)
                raise
            finally:
                if self.metrics is not None:
                    self.metrics.record_session(mode.value, status)
                if self.observer is not None:
                    observability = await self.observer.flush(status, error_message)

        self.audit_logger.log_verdict_event(
            final_review.joint_verdict.value, len(rounds), summary.swap_count, summary.checkpoint_count
        )
        logger.info(
            "Pairing run completed: verdict=%s rounds=%d swaps=%d",
            final_review.joint_verdict.value, len(rounds), summary.swap_count
        )

        return PairRunResult(
            execution_mode=mode,
            task=task,
            agreed_plan=agreed_plan,
            rounds=rounds,
            final_review=final_review,
            summary=summary,
            shared_journal=list(self.shared_journal),
            observability=observability,
        )
