"""Base model runtime interface with shared listener management."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from pairing_bots.models.agent_event import AgentEvent, AssistantMessage
from pairing_bots.models.pair_config import AgentId, ModelSpec


logger = logging.getLogger(__name__)

EventListener = Callable[[AgentEvent], None]


class BaseModelRuntime(ABC):
    """
    Conversation-holding model runtime that one worker drives.

    Implementations run a prompt to completion, executing tool calls on the
    way, and report progress through ``_emit`` so subscribers see every event
    synchronously and in order. ``steer`` must be accepted while ``prompt`` is
    awaiting.
    """

    def __init__(self) -> None:
        self._listeners: List[EventListener] = []
        self.system_prompt: Optional[str] = None

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AgentEvent) -> None:
        """Deliver an event to every current listener.

        Listener exceptions propagate into ``prompt`` and fail the invocation.
        """
        for listener in list(self._listeners):
            listener(event)

    def set_system_prompt(self, text: str) -> None:
        self.system_prompt = text

    @abstractmethod
    async def prompt(self, text: str) -> Optional[AssistantMessage]:
        """Run one user prompt to completion.

        Args:
            text: Prompt appended as the next user message

        Returns:
            The last assistant message of the invocation, or None when the
            model produced none
        """
        pass

    @abstractmethod
    def steer(self, text: str) -> None:
        """Inject a user message into the invocation currently in flight."""
        pass

    @abstractmethod
    def set_tools(self, tool_names: Sequence[str]) -> None:
        """Replace the tool set offered from the next invocation on."""
        pass

    @abstractmethod
    def append_message(self, text: str) -> None:
        """Append a user message to the conversation without invoking the model."""
        pass


RuntimeFactory = Callable[[AgentId, ModelSpec, str], BaseModelRuntime]
"""Builds the runtime for one worker from (agent id, model spec, working directory)."""
