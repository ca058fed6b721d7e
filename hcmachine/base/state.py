"""Orchestrator-facing machine state vocabulary."""

from enum import Enum


class MachineState(str, Enum):
    """Machine states understood by the orchestrator.

    Values match Docker Machine's state names so they can be passed through
    unchanged.
    """

    NONE = ""
    RUNNING = "Running"
    PAUSED = "Paused"
    SAVED = "Saved"
    STOPPED = "Stopped"
    STOPPING = "Stopping"
    STARTING = "Starting"
    ERROR = "Error"
    TIMEOUT = "Timeout"

    def __str__(self) -> str:
        return self.value
