"""Blocking wait for Hetzner Cloud actions."""

from __future__ import annotations

from hcloud.actions import Action, BoundAction

from hcmachine.base.exceptions import ActionFailedError
from hcmachine.base.waiter import Waiter
from hcmachine.hetzner.client import HetznerClient

_TERMINAL = (Action.STATUS_SUCCESS, Action.STATUS_ERROR)


class ActionWaiter:
    """Poll a provider action until it succeeds or fails.

    Shared by every power operation of the driver. Only a terminal status
    ends the wait; query errors propagate immediately.
    """

    def __init__(self, client: HetznerClient, waiter: Waiter) -> None:
        self.client = client
        self.waiter = waiter

    def wait(self, action: BoundAction) -> BoundAction:
        """Block until *action* reaches a terminal status.

        Returns:
            The final action with status ``success``.

        Raises:
            ActionFailedError: If the action finished with status ``error``.
            ProviderError: If polling the action failed.
            WaitError: If the optional deadline expired or the wait was
                cancelled.
        """
        final = self.waiter.poll(
            lambda: self.client.get_action(action.id),
            lambda current: current.status in _TERMINAL,
            description=f"action {action.id} ({action.command})",
        )
        if final.status == Action.STATUS_ERROR:
            error = final.error or {}
            raise ActionFailedError(final.id, error.get("code"), error.get("message"))
        return final
