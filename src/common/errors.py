from __future__ import annotations

from typing import Optional


class FSMError(Exception):
    """Base error for the state machine engine and its stores."""


class NotFoundError(FSMError, KeyError):
    """No state or data has been recorded for the given user (and key)."""

    def __init__(self, message: str, *, user_id: Optional[int] = None, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.key = key

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message instead
        return str(self.args[0]) if self.args else ""


class StoreFailure(FSMError):
    """
    An underlying storage operation failed.

    Covers I/O and encoding problems as well as errors raised by a plugged-in
    store. `operation` and `user_id` describe where it happened (either may be
    None for whole-store operations such as snapshot/restore).
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.user_id = user_id


class CallbackFailure(FSMError):
    """A registered callback raised while handling a transition.

    The original exception is available as `__cause__`. The state committed
    before the callback ran is left in place.
    """

    def __init__(self, message: str, *, operation: str, user_id: int, state_id: str) -> None:
        super().__init__(message)
        self.operation = operation
        self.user_id = user_id
        self.state_id = state_id


class TransitionDepthError(FSMError):
    """Nested transitions on one thread exceeded the configured max depth."""

    def __init__(self, message: str, *, user_id: int, state_id: str, depth: int) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.state_id = state_id
        self.depth = depth


class ContextCancelled(FSMError):
    """Raised by a context whose cancel() was called or whose deadline passed."""
