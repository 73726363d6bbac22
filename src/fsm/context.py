from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from common.errors import ContextCancelled


class Context:
    """
    Cancellation/timeout carrier handed to callbacks.

    The engine never cancels a context itself; it only passes it through so a
    callback doing blocking work can stop early. A context is cancelled when
    `cancel()` is called on it or on its parent, or when its deadline passes.
    """

    def __init__(
        self,
        *,
        deadline: Optional[float] = None,
        parent: Optional["Context"] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._parent = parent
        self._clock = clock
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline

    @classmethod
    def background(cls, *, clock: Callable[[], float] = time.monotonic) -> "Context":
        """A context with no deadline that is only cancelled explicitly."""
        return cls(clock=clock)

    @classmethod
    def with_timeout(cls, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> "Context":
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        return cls(deadline=clock() + seconds, clock=clock)

    def child(self, timeout: Optional[float] = None) -> "Context":
        """Derive a context cancelled with this one, optionally with a tighter deadline."""
        deadline = None if timeout is None else self._clock() + timeout
        return Context(deadline=deadline, parent=self, clock=self._clock)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._parent is not None and self._parent.cancelled:
            return True
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (>= 0), or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ContextCancelled("context cancelled or deadline exceeded")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or `timeout` elapses; returns `cancelled`.

        Waits in short slices so parent cancellation and deadlines are noticed.
        """
        limit = None if timeout is None else self._clock() + timeout
        while not self.cancelled:
            slices = [0.05]
            rem = self.remaining()
            if rem is not None:
                slices.append(rem)
            if limit is not None:
                left = limit - self._clock()
                if left <= 0:
                    break
                slices.append(left)
            self._event.wait(min(slices))
        return self.cancelled
