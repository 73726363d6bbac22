"""
Per-user finite state machine with state-entry callbacks.

Typical use from a chat bot handler:

    engine = Engine("default", {"ask_name": on_ask_name})
    if engine.current(user_id) == "default":
        engine.transition(Context.background(), user_id, "ask_name", chat_id)
"""

from common.errors import (
    CallbackFailure,
    ContextCancelled,
    FSMError,
    NotFoundError,
    StoreFailure,
    TransitionDepthError,
)

from .config import EngineConfig
from .context import Context
from .engine import Callback, Engine

__all__ = [
    "Callback",
    "CallbackFailure",
    "Context",
    "ContextCancelled",
    "Engine",
    "EngineConfig",
    "FSMError",
    "NotFoundError",
    "StoreFailure",
    "TransitionDepthError",
]
