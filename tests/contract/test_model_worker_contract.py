"""Contract tests for ModelWorker over a model runtime."""

import pytest

from pairing_bots.lib.errors import RuntimeScriptError, WorkerInvocationError, WorkerStateError
from pairing_bots.models.agent_event import AgentEnd, AgentStart, MessageEnd, StopReason
from pairing_bots.models.pair_config import AgentId, ModelSpec, PairAgentConfig, PairRole
from pairing_bots.services.base_model_runtime import BaseModelRuntime
from pairing_bots.services.model_worker import (
    CODING_TOOLS,
    READ_ONLY_TOOLS,
    ModelWorker,
    create_workers,
    private_memory_prefix,
)
from pairing_bots.services.scripted_runtime import ScriptedRuntime, ScriptedTurn


SPEC = ModelSpec(provider="local", model_id="scripted")


class TestModelWorker:
    """Test the worker's contract with its runtime."""

    def test_construction_sets_system_prompt_and_coding_tools(self):
        runtime = ScriptedRuntime([])
        worker = ModelWorker(AgentId.A, SPEC, runtime)

        assert "You are Model A" in runtime.system_prompt
        assert runtime.tools == list(CODING_TOOLS)
        assert worker.role == PairRole.DRIVER

    def test_role_selects_tool_set(self):
        runtime = ScriptedRuntime([])
        worker = ModelWorker(AgentId.B, SPEC, runtime)

        worker.set_role(PairRole.NAVIGATOR)
        assert runtime.tools == list(READ_ONLY_TOOLS)
        worker.set_role(PairRole.DRIVER)
        assert runtime.tools == list(CODING_TOOLS)

    def test_shared_and_private_messages(self):
        runtime = ScriptedRuntime([])
        worker = ModelWorker(AgentId.B, SPEC, runtime)
        worker.append_shared_context("Stage: task")
        worker.append_private_memory("my notes")

        assert runtime.messages == [
            "[SHARED CONTEXT]\nStage: task",
            "[PRIVATE MEMORY - MODEL B ONLY]\nmy notes",
        ]
        assert private_memory_prefix(AgentId.A) == "[PRIVATE MEMORY - MODEL A ONLY]"

    @pytest.mark.asyncio
    async def test_run_prompt_returns_stripped_text_and_events(self):
        runtime = ScriptedRuntime(["  done  \n"])
        worker = ModelWorker(AgentId.A, SPEC, runtime)
        seen = []

        text = await worker.run_prompt("go", on_event=seen.append)

        assert text == "done"
        assert runtime.prompts == ["go"]
        assert [type(e) for e in seen] == [AgentStart, MessageEnd, AgentEnd]
        assert runtime._listeners == []
        assert worker.in_flight is False

    @pytest.mark.asyncio
    async def test_error_stop_reason_raises(self):
        runtime = ScriptedRuntime([ScriptedTurn(response="partial", stop_reason=StopReason.ERROR)])
        worker = ModelWorker(AgentId.A, SPEC, runtime)

        with pytest.raises(WorkerInvocationError) as exc_info:
            await worker.run_prompt("go")

        assert str(exc_info.value) == "Model A (local/scripted) failed: unknown provider error"
        assert worker.in_flight is False

    @pytest.mark.asyncio
    async def test_aborted_stop_reason_uses_provider_message(self):
        runtime = ScriptedRuntime([
            ScriptedTurn(stop_reason=StopReason.ABORTED, error_message="rate limited"),
        ])
        worker = ModelWorker(AgentId.B, SPEC, runtime)

        with pytest.raises(WorkerInvocationError, match="rate limited"):
            await worker.run_prompt("go")

    @pytest.mark.asyncio
    async def test_listener_removed_after_failure(self):
        runtime = ScriptedRuntime([ScriptedTurn(stop_reason=StopReason.ERROR)])
        worker = ModelWorker(AgentId.A, SPEC, runtime)

        with pytest.raises(WorkerInvocationError):
            await worker.run_prompt("go", on_event=lambda event: None)
        assert runtime._listeners == []

    def test_steer_outside_invocation_raises(self):
        worker = ModelWorker(AgentId.A, SPEC, ScriptedRuntime([]))
        with pytest.raises(WorkerStateError):
            worker.steer("pause")

    @pytest.mark.asyncio
    async def test_steer_inside_invocation_reaches_runtime(self):
        runtime = ScriptedRuntime(["ok"])
        worker = ModelWorker(AgentId.A, SPEC, runtime)

        def steer_on_start(event):
            if isinstance(event, AgentStart):
                worker.steer("pause now")

        assert await worker.run_prompt("go", on_event=steer_on_start) == "ok"
        assert runtime.steers == ["pause now"]

    @pytest.mark.asyncio
    async def test_exhausted_script_raises(self):
        worker = ModelWorker(AgentId.A, SPEC, ScriptedRuntime([]))
        with pytest.raises(RuntimeScriptError):
            await worker.run_prompt("go")


class TestCreateWorkers:
    def test_builds_both_workers(self, tmp_path):
        calls = []

        def factory(agent_id, model_spec, cwd):
            calls.append((agent_id, model_spec.provider, cwd))
            return ScriptedRuntime([])

        config = PairAgentConfig(cwd=str(tmp_path))
        workers = create_workers(config, factory)

        assert set(workers) == {AgentId.A, AgentId.B}
        assert calls == [
            (AgentId.A, config.model_a.provider, str(tmp_path)),
            (AgentId.B, config.model_b.provider, str(tmp_path)),
        ]

    def test_factory_must_return_runtime(self, tmp_path):
        with pytest.raises(TypeError):
            create_workers(PairAgentConfig(cwd=str(tmp_path)), lambda *args: object())

    def test_runtime_is_abstract(self):
        with pytest.raises(TypeError):
            BaseModelRuntime()
