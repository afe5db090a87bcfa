"""Exponential backoff and cooperative cancellation.

Every wait in the engine (authorization polling, the finalize
processing wait, the optional DNS pre-check) goes through
:meth:`Cancellation.wait`, which sleeps on a :class:`threading.Event`
so a caller can abort from another thread.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

from acmelib.core.errors import Cancelled

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)


class Backoff:
    """Doubling delay schedule with a cap and an overall ceiling.

    Delay ``n`` is ``base * 2**n`` capped at *maximum*.  Once *timeout*
    seconds have elapsed since construction (or :meth:`reset`),
    :meth:`next_delay` returns ``None``.

    Parameters
    ----------
    base:
        First delay in seconds.
    maximum:
        Upper bound for a single delay.
    timeout:
        Total time budget in seconds.

    """

    def __init__(
        self,
        base: float = 1.0,
        maximum: float = 30.0,
        timeout: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base = base
        self.maximum = maximum
        self.timeout = timeout
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        self.attempts = 0
        self._started = self._clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    @property
    def expired(self) -> bool:
        return self.elapsed >= self.timeout

    def next_delay(self) -> float | None:
        """Return the next delay, or ``None`` once the ceiling is reached.

        The delay is trimmed so the schedule never sleeps past the
        ceiling.
        """
        remaining = self.timeout - self.elapsed
        if remaining <= 0:
            return None
        delay = min(self.base * (2**self.attempts), self.maximum)
        self.attempts += 1
        return min(delay, remaining)


class Cancellation:
    """A cancel flag with an optional deadline.

    Parameters
    ----------
    timeout:
        Seconds from now after which the operation counts as cancelled.
        ``None`` means no deadline.

    """

    def __init__(
        self,
        timeout: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None

    def cancel(self) -> None:
        """Request cancellation; wakes any thread blocked in :meth:`wait`."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            msg = "Operation cancelled" if self._event.is_set() else "Operation deadline exceeded"
            raise Cancelled(msg)

    def wait(self, seconds: float) -> None:
        """Sleep for *seconds* unless cancelled first.

        Raises
        ------
        Cancelled
            If cancellation is requested or the deadline passes before or
            during the wait.

        """
        self.raise_if_cancelled()
        if self._deadline is not None:
            seconds = min(seconds, max(0.0, self._deadline - self._clock()))
        if seconds > 0:
            self._event.wait(timeout=seconds)
        self.raise_if_cancelled()
