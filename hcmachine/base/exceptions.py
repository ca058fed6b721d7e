"""
hcmachine exception hierarchy.

Every failure surfaced by a driver inherits from :class:`MachineDriverError`.
Provider SDK exceptions are translated at the client-adapter boundary and
chained with ``raise ... from`` so the original cause stays inspectable.
"""

from __future__ import annotations

from typing import Any


# ── Base ──────────────────────────────────────────────────────────────
class MachineDriverError(Exception):
    """Root exception for all hcmachine errors."""

    #: Orchestrator state reported alongside this error, if any.
    state: Any = None


# ── Configuration ─────────────────────────────────────────────────────
class ConfigurationError(MachineDriverError):
    """Driver configuration is missing or invalid."""


# ── Provider API ──────────────────────────────────────────────────────
class ProviderError(MachineDriverError):
    """Base exception for cloud provider API failures."""


class ResourceNotFoundError(ProviderError):
    """Image, location, server type, SSH key, server or action not found."""


class AuthenticationError(ProviderError):
    """The provider rejected the access token."""


class ActionFailedError(ProviderError):
    """A provider action finished with status ``error``.

    Attributes:
        action_id: Provider action ID.
        code: Provider error code (e.g. ``action_failed``).
        message: Provider error message.
    """

    def __init__(
        self,
        action_id: int | None,
        code: str | None = None,
        message: str | None = None,
    ) -> None:
        self.action_id = action_id
        self.code = code
        self.message = message
        super().__init__(f"Action {action_id} failed: {code or 'error'}: {message or 'no details'}")


# ── Credentials ───────────────────────────────────────────────────────
class CredentialError(MachineDriverError):
    """SSH key generation or registration failed."""


# ── Lifecycle ─────────────────────────────────────────────────────────
class MachineNotCreatedError(MachineDriverError):
    """A lifecycle operation was called before the machine was created."""


# ── Waiting ───────────────────────────────────────────────────────────
class WaitError(MachineDriverError):
    """A poll loop ended without reaching its terminal condition."""


class WaitTimeoutError(WaitError):
    """The optional deadline of a poll loop expired."""


class WaitCancelledError(WaitError):
    """A poll loop was cancelled through its cancellation event."""
