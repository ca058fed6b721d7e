"""
Fixed-interval polling with optional deadline and cancellation.

Provider operations (server creation, power actions) complete
asynchronously. :class:`Waiter` turns them into blocking calls by fetching
the current status until a terminal condition holds, sleeping a fixed
interval between fetches. By default it waits forever; a deadline or a
cancellation event can be layered on without changing that default.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, TypeVar

from hcmachine.base.exceptions import WaitCancelledError, WaitTimeoutError

logger = logging.getLogger("hcmachine")

T = TypeVar("T")


class Waiter:
    """Cancellable wait context for poll loops.

    Args:
        interval: Seconds to sleep between polls.
        timeout: Optional deadline in seconds, measured from the start of
            each :meth:`poll` call. ``None`` polls until done.
        cancel_event: Optional event; setting it from another thread aborts
            the wait at the next sleep.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        interval: float = 1.0,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self.timeout = timeout
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock

    def cancel(self) -> None:
        """Abort any poll currently running on this waiter."""
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def poll(
        self,
        fetch: Callable[[], T],
        done: Callable[[T], bool],
        description: str = "operation",
    ) -> T:
        """Call *fetch* until *done* accepts its result.

        Exceptions raised by *fetch* or *done* are not retried; they abort
        the poll and propagate to the caller.

        Args:
            fetch: Returns the current status of the awaited operation.
            done: Decides whether a fetched status is terminal.
            description: Label used in log and error messages.

        Returns:
            The first fetched value for which *done* returned True.

        Raises:
            WaitTimeoutError: If the deadline expired first.
            WaitCancelledError: If the cancellation event was set.
        """
        deadline = None if self.timeout is None else self._clock() + self.timeout
        attempt = 0
        while True:
            if self.cancelled:
                raise WaitCancelledError(f"Waiting for {description} was cancelled")
            attempt += 1
            value = fetch()
            if done(value):
                logger.debug("%s finished after %d poll(s)", description, attempt)
                return value
            if deadline is not None and self._clock() + self.interval > deadline:
                raise WaitTimeoutError(
                    f"Timed out after {self.timeout:.1f}s waiting for {description}"
                )
            logger.debug(
                "%s still pending after poll %d, checking again in %.1fs",
                description,
                attempt,
                self.interval,
            )
            # Event.wait doubles as the sleep so cancel() interrupts it.
            if self.cancel_event.wait(self.interval):
                raise WaitCancelledError(f"Waiting for {description} was cancelled")
