"""
Exception hierarchy for pairing runs.

Protocol malformation never raises; these cover the failures that abort
a run or reject an operation outright.
"""

from pairing_bots.lib.config import ConfigurationError


class PairingBotsError(Exception):
    """Base class for pairing run errors."""
    pass


class WorkerInvocationError(PairingBotsError):
    """A model invocation ended with an error or aborted stop reason."""

    def __init__(self, agent_id: str, model_label: str, reason: str):
        self.agent_id = agent_id
        self.model_label = model_label
        self.reason = reason
        super().__init__(f"Model {agent_id} ({model_label}) failed: {reason}")


class WorkerStateError(PairingBotsError):
    """Operation is not valid in the worker's current state."""
    pass


class RuntimeScriptError(PairingBotsError):
    """Replay script is malformed or has no turns left."""
    pass


class WorkspaceError(PairingBotsError):
    """Workspace could not be prepared or cleaned up."""
    pass


__all__ = [
    "ConfigurationError",
    "PairingBotsError",
    "RuntimeScriptError",
    "WorkerInvocationError",
    "WorkerStateError",
    "WorkspaceError",
]
