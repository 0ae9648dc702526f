"""End-to-end paired-turns sessions over scripted runtimes."""

import asyncio
import json
from unittest.mock import MagicMock, patch

import pytest

from pairing_bots.lib.errors import WorkerInvocationError
from pairing_bots.lib.metrics import PairMetrics
from pairing_bots.models.agent_event import StopReason
from pairing_bots.models.pair_config import AgentId, PairAgentConfig
from pairing_bots.models.protocol_messages import Decision, DriverStatus, JointVerdict
from pairing_bots.services.pair_orchestrator import PairOrchestrator
from pairing_bots.services.prompt_builder import FEEDBACK_RESOLUTION_PHASE, build_pause_interruption_prompt
from pairing_bots.services.scripted_runtime import ScriptedTurn
from pairing_bots.services.session_observer import SessionObserver


TASK = "Add input validation to the signup form"


def stages(result):
    return [entry.stage for entry in result.shared_journal]


def sticky_script(r):
    """A drives twice under the sticky policy and finishes with no feedback in round 2."""
    script_a = [
        r.plan("plan_draft", "1. validate email"),
        r.plan("agreed_plan", "1. validate email\n2. add tests"),
        r.turn(r.driver(summary="Email validation"), r.write_call("w1", "x" * 10) + r.write_call("w2", "y" * 10)),
        r.turn(r.decision("accept"), r.write_call("w3", "z" * 5) + r.write_call("w4", "q" * 5)),
        r.turn(r.driver(status="done", summary="Tests added")),
        r.review(feedback="NONE", reflection="A final notes"),
        r.verdict("APPROVED"),
    ]
    script_b = [
        r.plan("plan_feedback", "Add tests too"),
        r.review(feedback="Add tests", reflection="B round one notes"),
        r.review(feedback="NONE."),
        r.review(feedback="NONE", reflection="B final notes"),
    ]
    return script_a, script_b


@pytest.mark.integration
class TestStickySession:
    """Test a sticky-policy session from planning to verdict."""

    @pytest.mark.asyncio
    async def test_same_driver_until_done(self, pair_config, make_workers, replies, fixed_clock, tmp_path):
        workers, runtimes = make_workers(pair_config, *sticky_script(replies))
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(tmp_path / "run.json"))
        orchestrator = PairOrchestrator(pair_config, workers, observer=observer, metrics=PairMetrics(),
                                        clock=fixed_clock)

        result = await orchestrator.run(TASK)

        assert result.status == "completed"
        assert result.agreed_plan == "1. validate email\n2. add tests"
        assert [r.driver for r in result.rounds] == [AgentId.A, AgentId.A]
        assert result.rounds[1].driver_report.status == DriverStatus.DONE
        assert result.rounds[1].driver_decision is None
        assert result.summary.swap_count == 0
        assert result.final_review.joint_verdict == JointVerdict.APPROVED

        first = result.rounds[0]
        assert first.driver_decision.decision == Decision.ACCEPT
        assert first.checkpoint_count == 2
        assert first.driving_phase.checkpoint_count == 1
        assert first.edit_write_call_count == 4
        assert first.estimated_written_bytes == 30

        assert runtimes[AgentId.A].steers == [
            build_pause_interruption_prompt(AgentId.B),
            build_pause_interruption_prompt(AgentId.B, FEEDBACK_RESOLUTION_PHASE),
        ]
        assert runtimes[AgentId.A].remaining == 0
        assert runtimes[AgentId.B].remaining == 0

        assert stages(result) == [
            "task", "plan_draft", "plan_feedback", "plan_agreed",
            "driver_report", "navigator_feedback", "navigator_handoff_signal", "driver_decision",
            "driver_report", "navigator_feedback", "navigator_handoff_signal",
            "loop_stop", "final_review_A", "final_review_B", "joint_verdict",
        ]
        assert result.shared_journal[-4].content == (
            "Stopped at round 2 because driver signaled done and navigator had no feedback."
        )
        assert result.shared_journal[9].content == "NONE"

        summary = result.summary
        assert summary.checkpoint_count == 2
        assert summary.total_estimated_written_bytes == 30
        assert summary.contributions[AgentId.A].rough_code_share_percent == 100.0
        assert summary.contributions[AgentId.B].rough_code_share_percent == 0.0
        assert summary.contributions[AgentId.A].rounds_driven == 2

        assert result.observability is not None
        assert result.observability.prompt_count == 11
        payload = json.loads((tmp_path / "run.json").read_text())
        assert payload["meta"]["status"] == "completed"
        assert payload["events"][-1]["name"] == "session_end"

    @pytest.mark.asyncio
    async def test_shared_context_is_identical_and_private_memory_is_not(
        self, pair_config, make_workers, replies, fixed_clock
    ):
        workers, runtimes = make_workers(pair_config, *sticky_script(replies))
        result = await PairOrchestrator(pair_config, workers, clock=fixed_clock).run(TASK)

        def shared(agent_id):
            return [m for m in runtimes[agent_id].messages if m.startswith("[SHARED CONTEXT]")]

        def private(agent_id):
            return [m for m in runtimes[agent_id].messages if m.startswith("[PRIVATE MEMORY")]

        assert shared(AgentId.A) == shared(AgentId.B)
        assert shared(AgentId.A) == [f"[SHARED CONTEXT]\n{e.render()}" for e in result.shared_journal]
        assert private(AgentId.A) == ["[PRIVATE MEMORY - MODEL A ONLY]\nA final notes"]
        assert "[PRIVATE MEMORY - MODEL B ONLY]\nB round one notes" in private(AgentId.B)
        assert not any("B round one notes" in m for m in runtimes[AgentId.A].messages)

    @pytest.mark.asyncio
    async def test_replay_is_deterministic(self, pair_config, make_workers, replies, clock_factory):
        results = []
        for _ in range(2):
            workers, _ = make_workers(pair_config, *sticky_script(replies))
            result = await PairOrchestrator(pair_config, workers, clock=clock_factory()).run(TASK)
            results.append(result.model_dump(mode="json"))

        assert results[0] == results[1]


@pytest.mark.integration
class TestTurnPolicies:
    """Test swaps under alternate and sticky policies."""

    @pytest.mark.asyncio
    async def test_alternate_each_round(self, tmp_path, make_workers, replies):
        config = PairAgentConfig(
            cwd=str(tmp_path),
            max_rounds=4,
            pause_strategy={"mode": "none"},
            turn_policy={"mode": "alternate_each_round"},
        )
        r = replies
        script_a = [
            r.plan("plan_draft", "draft"),
            r.plan("agreed_plan", "plan"),
            r.turn(r.driver(), r.write_call("a1", "a" * 30)),
            r.review(),
            r.turn(r.driver()),
            r.review(),
            r.review(),
            r.verdict("NEEDS_MORE_WORK", next_steps="Add docs"),
        ]
        script_b = [
            r.plan("plan_feedback", "ok"),
            r.review(),
            r.turn(r.driver(), r.write_call("b1", "b" * 10)),
            r.review(),
            r.turn(r.driver()),
            r.review(),
        ]
        workers, _ = make_workers(config, script_a, script_b)

        result = await PairOrchestrator(config, workers).run(TASK)

        assert [r.driver for r in result.rounds] == [AgentId.A, AgentId.B, AgentId.A, AgentId.B]
        assert all(r.navigator != r.driver for r in result.rounds)
        assert result.summary.swap_count == 3
        assert result.summary.checkpoint_count == 0
        assert stages(result).count("driver_swap") == 3
        assert "Reached max rounds (4)." in [e.content for e in result.shared_journal]
        assert result.final_review.joint_verdict == JointVerdict.NEEDS_MORE_WORK
        assert result.final_review.next_steps == "Add docs"

        shares = {a: c.rough_code_share_percent for a, c in result.summary.contributions.items()}
        assert shares == {AgentId.A: 75.0, AgentId.B: 25.0}
        assert sum(shares.values()) == 100.0

    @pytest.mark.asyncio
    async def test_navigator_handoff(self, pair_config, make_workers, replies):
        r = replies
        script_a = [
            r.plan("plan_draft", "draft"),
            r.plan("agreed_plan", "plan"),
            r.driver(),
            r.driver(),
            r.review(),
            r.review(),
            r.verdict(),
        ]
        script_b = [
            r.plan("plan_feedback", "ok"),
            r.review(),
            r.review(recommendation="handoff"),
            r.driver(status="done"),
            r.review(),
        ]
        workers, _ = make_workers(pair_config, script_a, script_b)

        result = await PairOrchestrator(pair_config, workers).run(TASK)

        assert [r.driver for r in result.rounds] == [AgentId.A, AgentId.A, AgentId.B]
        assert result.summary.swap_count == 1
        swap = next(e for e in result.shared_journal if e.stage == "driver_swap")
        assert swap.actor == "system"
        assert swap.content == "Swapped driver from A to B. Reason: navigator_requested_handoff."

        shares = {a: c.rough_code_share_percent for a, c in result.summary.contributions.items()}
        assert shares == {AgentId.A: 66.7, AgentId.B: 33.3}

    @pytest.mark.asyncio
    async def test_round_safety_cap(self, tmp_path, make_workers, replies):
        config = PairAgentConfig(
            cwd=str(tmp_path),
            max_rounds=3,
            pause_strategy={"mode": "none"},
            turn_policy={"mode": "same_driver_until_navigator_signoff", "max_consecutive_rounds": 2},
        )
        r = replies
        script_a = [r.plan("plan_draft", "d"), r.plan("agreed_plan", "p"), r.driver(), r.driver(), r.review(),
                    r.review(), r.verdict()]
        script_b = [r.plan("plan_feedback", "f"), r.review(), r.review(), r.driver(), r.review()]
        workers, _ = make_workers(config, script_a, script_b)

        result = await PairOrchestrator(config, workers).run(TASK)

        swap = next(e for e in result.shared_journal if e.stage == "driver_swap")
        assert swap.content.endswith("Reason: safety_cap_rounds_2.")
        assert [r.driver for r in result.rounds] == [AgentId.A, AgentId.A, AgentId.B]


@pytest.mark.integration
class TestFailures:
    """Test that failures abort the run and still flush the trail."""

    @pytest.mark.asyncio
    async def test_worker_error_aborts_and_flushes(self, pair_config, make_workers, replies, tmp_path):
        script_a = [replies.plan("plan_draft", "draft")]
        script_b = [ScriptedTurn(stop_reason=StopReason.ERROR, error_message="provider overloaded")]
        workers, _ = make_workers(pair_config, script_a, script_b)
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(tmp_path / "run.json"))

        with pytest.raises(WorkerInvocationError, match="provider overloaded"):
            await PairOrchestrator(pair_config, workers, observer=observer).run(TASK)

        assert observer.flushed is True
        payload = json.loads((tmp_path / "run.json").read_text())
        assert payload["meta"]["status"] == "failed"
        assert "provider overloaded" in payload["meta"]["error_message"]
        assert payload["events"][-1]["name"] == "session_error"

    @pytest.mark.asyncio
    async def test_cancelled_run_is_recorded_as_failed(self, pair_config, make_workers, replies, tmp_path):
        workers, runtimes = make_workers(pair_config, [replies.plan("plan_draft", "draft")], [])
        observer = SessionObserver(cwd=str(tmp_path), log_file=str(tmp_path / "run.json"))
        metrics = MagicMock(spec=PairMetrics)

        with patch.object(runtimes[AgentId.B], "prompt", side_effect=asyncio.CancelledError()):
            with pytest.raises(asyncio.CancelledError):
                await PairOrchestrator(pair_config, workers, observer=observer, metrics=metrics).run(TASK)

        payload = json.loads((tmp_path / "run.json").read_text())
        assert payload["meta"]["status"] == "failed"
        assert payload["meta"]["error_message"] == "CancelledError"
        assert payload["events"][-1]["name"] == "session_error"
        metrics.record_session.assert_called_once_with("paired_turns", "failed")

    def test_missing_worker_rejected(self, pair_config, make_workers):
        workers, _ = make_workers(pair_config, [], [])
        del workers[AgentId.B]
        with pytest.raises(ValueError):
            PairOrchestrator(pair_config, workers)
