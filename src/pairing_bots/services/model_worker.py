"""Per-agent worker wrapping one model runtime."""

import logging
from typing import Callable, Dict, Optional

from pairing_bots.lib.errors import WorkerInvocationError, WorkerStateError
from pairing_bots.models.agent_event import AgentEvent
from pairing_bots.models.pair_config import AgentId, ModelSpec, PairAgentConfig, PairRole
from pairing_bots.services.base_model_runtime import BaseModelRuntime, RuntimeFactory
from pairing_bots.services.prompt_builder import build_system_prompt


logger = logging.getLogger(__name__)

CODING_TOOLS = ("read", "bash", "edit", "write")
READ_ONLY_TOOLS = ("read", "grep", "find", "ls")

SHARED_CONTEXT_PREFIX = "[SHARED CONTEXT]"


def private_memory_prefix(agent_id: AgentId) -> str:
    return f"[PRIVATE MEMORY - MODEL {AgentId(agent_id).value} ONLY]"


class ModelWorker:
    """One of the two paired workers.

    Owns its runtime's conversation state. Shared context and private memory
    are both appended as user messages; only the orchestrator decides which
    text goes to which worker.
    """

    def __init__(self, agent_id: AgentId, model_spec: ModelSpec, runtime: BaseModelRuntime):
        self.agent_id = AgentId(agent_id)
        self.model_spec = model_spec
        self.runtime = runtime
        self.logger = logging.getLogger(f"{__name__}.{self.agent_id.value}")
        self._role = PairRole.DRIVER
        self._in_flight = False

        runtime.set_system_prompt(build_system_prompt(self.agent_id))
        runtime.set_tools(CODING_TOOLS)

    @property
    def role(self) -> PairRole:
        return self._role

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def set_role(self, role: PairRole) -> None:
        self._role = PairRole(role)
        self.runtime.set_tools(CODING_TOOLS if self._role == PairRole.DRIVER else READ_ONLY_TOOLS)
        self.logger.debug("Role set to %s", self._role.value)

    def append_shared_context(self, text: str) -> None:
        self.runtime.append_message(f"{SHARED_CONTEXT_PREFIX}\n{text}")

    def append_private_memory(self, text: str) -> None:
        self.runtime.append_message(f"{private_memory_prefix(self.agent_id)}\n{text}")

    async def run_prompt(self, prompt: str, on_event: Optional[Callable[[AgentEvent], None]] = None) -> str:
        """Run a prompt and return the final assistant text.

        Raises:
            WorkerInvocationError: The invocation ended with an error or aborted stop reason
            WorkerStateError: This worker already has an invocation in flight
        """
        if self._in_flight:
            raise WorkerStateError(f"Model {self.agent_id.value} already has an invocation in flight")

        unsubscribe = self.runtime.subscribe(on_event) if on_event is not None else None
        self._in_flight = True
        try:
            message = await self.runtime.prompt(prompt)
        finally:
            self._in_flight = False
            if unsubscribe is not None:
                unsubscribe()

        if message is None:
            return ""
        if message.failed:
            reason = (message.error_message or "").strip() or "unknown provider error"
            self.logger.error("Invocation failed with stop reason %s: %s", message.stop_reason.value, reason)
            raise WorkerInvocationError(
                self.agent_id.value,
                f"{self.model_spec.provider}/{self.model_spec.model_id}",
                reason,
            )
        return message.text.strip()

    def steer(self, text: str) -> None:
        """Inject a message into this worker's in-flight invocation."""
        if not self._in_flight:
            raise WorkerStateError(f"Model {self.agent_id.value} has no invocation in flight to steer")
        self.runtime.steer(text)


def create_workers(config: PairAgentConfig, runtime_factory: RuntimeFactory) -> Dict[AgentId, ModelWorker]:
    """Build both workers for a run from a runtime factory."""
    workers = {}
    for agent_id in (AgentId.A, AgentId.B):
        model_spec = config.model_for(agent_id)
        runtime = runtime_factory(agent_id, model_spec, config.cwd)
        if not isinstance(runtime, BaseModelRuntime):
            raise TypeError(f"Runtime factory returned {type(runtime).__name__}, expected a BaseModelRuntime")
        workers[agent_id] = ModelWorker(agent_id, model_spec, runtime)
    return workers
