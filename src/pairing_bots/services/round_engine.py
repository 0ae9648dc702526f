"""One driver/navigator round: driver turn, review, optional decision."""

import logging
from enum import Enum
from typing import Awaitable, Callable, Mapping, Optional, Protocol

from pairing_bots.lib.observability import get_tracer
from pairing_bots.models.agent_event import AgentEvent
from pairing_bots.models.pair_config import AgentId, PairAgentConfig, PairRole, other_agent
from pairing_bots.models.run_result import RoundResult
from pairing_bots.services.execution_tracker import ExecutionTracker
from pairing_bots.services.model_worker import ModelWorker
from pairing_bots.services.prompt_builder import (
    FEEDBACK_RESOLUTION_PHASE,
    build_driver_decision_prompt,
    build_driver_turn_prompt,
    build_navigator_review_prompt,
    build_pause_interruption_prompt,
    build_solo_driver_turn_prompt,
    build_solo_navigator_review_prompt,
    describe_pause_strategy,
    describe_turn_policy,
)
from pairing_bots.services.protocol_parser import (
    NONE_TOKEN,
    parse_driver_decision,
    parse_driver_report,
    parse_navigator_review,
)


logger = logging.getLogger(__name__)


class RoundStyle(str, Enum):
    """Prompt family used for a round."""

    PAIRED = "paired"
    SOLO = "solo"


class PromptRunner(Protocol):
    def __call__(
        self,
        actor: AgentId,
        prompt: str,
        *,
        prompt_kind: str,
        phase: str,
        round_number: Optional[int] = None,
        on_event: Optional[Callable[[AgentEvent], None]] = None,
    ) -> Awaitable[str]:
        ...


Broadcaster = Callable[[str, str, str], None]


class RoundEngine:
    """Runs rounds against the two workers.

    Prompts go through ``run_prompt`` and journal entries through
    ``broadcast`` so the orchestrator stays the only owner of the shared
    journal and observability trail.
    """

    def __init__(
        self,
        config: PairAgentConfig,
        workers: Mapping[AgentId, ModelWorker],
        run_prompt: PromptRunner,
        broadcast: Broadcaster,
    ):
        self.config = config
        self.workers = workers
        self.run_prompt = run_prompt
        self.broadcast = broadcast

    async def run_round(
        self,
        task: str,
        agreed_plan: str,
        round_number: int,
        driver_id: AgentId,
        style: RoundStyle = RoundStyle.PAIRED,
    ) -> RoundResult:
        driver_id = AgentId(driver_id)
        navigator_id = other_agent(driver_id)
        driver = self.workers[driver_id]
        navigator = self.workers[navigator_id]

        with get_tracer().start_as_current_span(
            "pair.round",
            attributes={
                "pair.round": round_number,
                "pair.driver": driver_id.value,
                "pair.style": RoundStyle(style).value,
            },
        ):
            driver.set_role(PairRole.DRIVER)
            navigator.set_role(PairRole.NAVIGATOR)

            def interrupt_driver(phase: str) -> None:
                driver.steer(build_pause_interruption_prompt(navigator_id, phase))

            tracker = ExecutionTracker(self.config.pause_strategy, on_checkpoint=interrupt_driver)
            pause_description = describe_pause_strategy(self.config.pause_strategy)
            turn_policy_description = describe_turn_policy(self.config.turn_policy)

            if style == RoundStyle.SOLO:
                driver_prompt = build_solo_driver_turn_prompt(
                    task=task,
                    agreed_plan=agreed_plan,
                    driver=driver_id,
                    reviewer=navigator_id,
                    pause_description=pause_description,
                )
            else:
                driver_prompt = build_driver_turn_prompt(
                    task=task,
                    agreed_plan=agreed_plan,
                    round_number=round_number,
                    driver=driver_id,
                    navigator=navigator_id,
                    pause_description=pause_description,
                    turn_policy_description=turn_policy_description,
                )

            report_raw = await self.run_prompt(
                driver_id,
                driver_prompt,
                prompt_kind="driver_turn",
                phase="driving",
                round_number=round_number,
                on_event=tracker,
            )
            report = parse_driver_report(report_raw)
            self.broadcast(
                "driver_report",
                driver_id.value,
                "\n".join([
                    f"Round {round_number}",
                    f"Status: {report.status.value}",
                    f"Summary: {report.summary}",
                    f"Changes: {report.changes}",
                    f"Navigator questions: {report.questions_for_navigator}",
                ]),
            )

            driving_phase = tracker.snapshot()

            if style == RoundStyle.SOLO:
                review_prompt = build_solo_navigator_review_prompt(
                    task=task,
                    agreed_plan=agreed_plan,
                    driver=driver_id,
                    reviewer=navigator_id,
                    driver_report=report.raw,
                    checkpoint_count=driving_phase.checkpoint_count,
                )
            else:
                review_prompt = build_navigator_review_prompt(
                    task=task,
                    agreed_plan=agreed_plan,
                    round_number=round_number,
                    driver=driver_id,
                    driver_report=report.raw,
                    pause_triggered=driving_phase.pause_triggered,
                    turn_policy_description=turn_policy_description,
                )

            review_raw = await self.run_prompt(
                navigator_id,
                review_prompt,
                prompt_kind="navigator_review",
                phase="navigation",
                round_number=round_number,
            )
            review = parse_navigator_review(review_raw)
            navigator.append_private_memory(review.private_reflection)
            self.broadcast(
                "navigator_feedback",
                navigator_id.value,
                review.public_feedback if review.has_feedback else NONE_TOKEN,
            )
            self.broadcast("navigator_handoff_signal", navigator_id.value, review.driver_recommendation.value)

            decision = None
            if review.has_feedback:
                tracker.set_phase(FEEDBACK_RESOLUTION_PHASE)
                decision_raw = await self.run_prompt(
                    driver_id,
                    build_driver_decision_prompt(review.public_feedback),
                    prompt_kind="driver_decision",
                    phase=FEEDBACK_RESOLUTION_PHASE,
                    round_number=round_number,
                    on_event=tracker,
                )
                decision = parse_driver_decision(decision_raw)
                self.broadcast(
                    "driver_decision",
                    driver_id.value,
                    f"Decision: {decision.decision.value}\nJustification: {decision.justification}",
                )

            final = tracker.snapshot()
            logger.info(
                "Round %d finished: driver=%s status=%s feedback=%s checkpoints=%d",
                round_number, driver_id.value, report.status.value, review.has_feedback, final.checkpoint_count
            )

            return RoundResult(
                round=round_number,
                driver=driver_id,
                navigator=navigator_id,
                pause_triggered=final.pause_triggered,
                checkpoint_count=final.checkpoint_count,
                edit_write_call_count=final.edit_write_call_count,
                estimated_written_bytes=final.estimated_written_bytes,
                driver_report=report,
                navigator_review=review,
                driver_decision=decision,
                driving_phase=driving_phase,
            )
