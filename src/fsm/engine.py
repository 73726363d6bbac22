from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Mapping, Optional

from common.errors import (
    CallbackFailure,
    FSMError,
    NotFoundError,
    StoreFailure,
    TransitionDepthError,
)
from common.logging import get_logger
from state.codec import build_snapshot, decode_snapshot, encode_snapshot
from state.stores import SnapshotCapable

from .config import EngineConfig
from .context import Context


Callback = Callable[..., None]

log = get_logger(__name__)


class Engine:
    """
    Per-user state machine with callbacks on state entry.

    Each user has one current state (a plain string) and one bag of key/value
    data. Any state may follow any other; there is no transition table.

    `transition` commits the new state first and then runs the callback
    registered for it. The commit is not rolled back when the callback raises:
    the caller gets a `CallbackFailure` and the user stays in the new state.

    No store or registry lock is held while a callback runs, so callbacks may
    call `transition` (or any other engine method) again. The engine does not
    serialize concurrent transitions for the same user; callers that need
    per-user ordering must serialize those calls themselves.
    """

    def __init__(
        self,
        initial_state: str,
        callbacks: Optional[Mapping[str, Callback]] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        cfg = config or EngineConfig()
        self._initial_state = initial_state
        self._callbacks: Dict[str, Callback] = dict(callbacks or {})
        self._callbacks_lock = threading.Lock()
        self._states = cfg.resolve_state_store()
        self._data = cfg.resolve_data_store()
        self._max_depth = cfg.max_depth
        self._local = threading.local()

    @classmethod
    def from_snapshot(
        cls,
        data: bytes,
        callbacks: Optional[Mapping[str, Callback]] = None,
        config: Optional[EngineConfig] = None,
    ) -> "Engine":
        """Build an engine whose initial state and contents come from a snapshot."""
        snap = decode_snapshot(data)
        engine = cls(snap.initial_state_id, callbacks, config)
        engine._apply(snap.user_states, snap.storage)
        return engine

    @property
    def initial_state(self) -> str:
        return self._initial_state

    # -------- Callback registry --------
    def add_callback(self, state_id: str, callback: Callback) -> None:
        with self._callbacks_lock:
            self._callbacks[state_id] = callback

    def add_callbacks(self, callbacks: Mapping[str, Callback]) -> None:
        with self._callbacks_lock:
            self._callbacks.update(callbacks)

    def _callback_for(self, state_id: str) -> Optional[Callback]:
        with self._callbacks_lock:
            return self._callbacks.get(state_id)

    # -------- Transitions --------
    def transition(self, ctx: Optional[Context], user_id: int, state_id: str, *args: Any) -> None:
        """Move `user_id` to `state_id` and run its callback with `ctx, *args`.

        Raises:
        - StoreFailure if the state could not be committed.
        - CallbackFailure if the callback raised (state stays committed).
        - TransitionDepthError if nesting exceeds `max_depth` (nothing committed).
        """
        depth = getattr(self._local, "depth", 0)
        if self._max_depth is not None and depth >= self._max_depth:
            raise TransitionDepthError(
                f"transition to {state_id!r} for user {user_id} exceeds max depth {self._max_depth}",
                user_id=user_id,
                state_id=state_id,
                depth=depth + 1,
            )

        self._store_call("transition", user_id, self._states.set, user_id, state_id)
        log.debug("fsm.transition.committed", user_id=user_id, state_id=state_id, depth=depth)

        callback = self._callback_for(state_id)
        if callback is None:
            return

        if ctx is None:
            ctx = Context.background()

        self._local.depth = depth + 1
        try:
            callback(ctx, *args)
        except Exception as ex:
            log.warning(
                "fsm.callback.failed",
                user_id=user_id,
                state_id=state_id,
                error=repr(ex),
            )
            raise CallbackFailure(
                f"callback for state {state_id!r} failed for user {user_id}: {ex}",
                operation="transition",
                user_id=user_id,
                state_id=state_id,
            ) from ex
        finally:
            self._local.depth = depth

    def current(self, user_id: int) -> str:
        """Current state of `user_id`, writing the initial state on first sight."""
        if self._store_call("current", user_id, self._states.exists, user_id):
            try:
                return self._store_call("current", user_id, self._states.get, user_id)
            except NotFoundError:
                # entry vanished between exists() and get(); treat as unseen
                pass
        self._store_call("current", user_id, self._states.set, user_id, self._initial_state)
        log.debug("fsm.state.materialized", user_id=user_id, state_id=self._initial_state)
        return self._initial_state

    def reset(self, user_id: int) -> None:
        """Put `user_id` back in the initial state.

        The entry is overwritten, not deleted, so the store still reports it as
        existing. Data and callbacks are left alone.
        """
        self._store_call("reset", user_id, self._states.set, user_id, self._initial_state)
        log.debug("fsm.state.reset", user_id=user_id, state_id=self._initial_state)

    # -------- User data --------
    def set(self, user_id: int, key: str, value: Any) -> None:
        self._store_call("set", user_id, self._data.set, user_id, key, value)

    def get(self, user_id: int, key: str) -> Any:
        """Value stored under `key`, None if unset.

        Raises NotFoundError if nothing was ever stored for `user_id`.
        """
        return self._store_call("get", user_id, self._data.get, user_id, key)

    def delete(self, user_id: int, key: str) -> None:
        self._store_call("delete", user_id, self._data.delete, user_id, key)

    # -------- Snapshot / restore --------
    def snapshot(self) -> bytes:
        """Encode the initial state and both stores as one JSON document."""
        states, data = self._snapshot_stores("snapshot")
        # Copies are taken under each store's lock; encoding runs lock-free
        snap = build_snapshot(self._initial_state, states.dump(), data.dump())
        document = encode_snapshot(snap)
        log.info(
            "fsm.snapshot.created",
            users=len(snap.user_states),
            data_users=len(snap.storage),
            size=len(document),
        )
        return document

    def restore(self, data: bytes) -> None:
        """Replace both stores with the contents of a snapshot document.

        The document is fully decoded before anything is touched, so a bad
        document leaves the engine unchanged. If the data store rejects its
        new contents, the state store is put back as it was.
        """
        snap = decode_snapshot(data)
        if snap.initial_state_id != self._initial_state:
            log.warning(
                "fsm.snapshot.initial_state_mismatch",
                snapshot_initial=snap.initial_state_id,
                engine_initial=self._initial_state,
            )
        self._apply(snap.user_states, snap.storage)
        log.info("fsm.snapshot.restored", users=len(snap.user_states), data_users=len(snap.storage))

    def _apply(self, user_states: Mapping[int, str], storage: Mapping[int, Mapping[str, Any]]) -> None:
        states, data = self._snapshot_stores("restore")
        try:
            previous_states = states.dump()
            states.replace(user_states)
        except FSMError:
            raise
        except Exception as ex:
            raise StoreFailure(f"restore failed: {ex}", operation="restore") from ex
        try:
            data.replace(storage)
        except Exception as ex:
            # Put the state store back so the restore applies all or nothing
            states.replace(previous_states)
            log.warning("fsm.snapshot.restore_rolled_back", error=repr(ex))
            if isinstance(ex, FSMError):
                raise
            raise StoreFailure(f"restore failed: {ex}", operation="restore") from ex

    def _snapshot_stores(self, operation: str) -> tuple[SnapshotCapable, SnapshotCapable]:
        for store in (self._states, self._data):
            if not isinstance(store, SnapshotCapable):
                raise StoreFailure(
                    f"{type(store).__name__} does not support {operation}",
                    operation=operation,
                )
        return self._states, self._data  # type: ignore[return-value]

    @staticmethod
    def _store_call(operation: str, user_id: int, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except StoreFailure as ex:
            if ex.operation is None:
                ex.operation = operation
            if ex.user_id is None:
                ex.user_id = user_id
            raise
        except FSMError:
            raise
        except Exception as ex:
            raise StoreFailure(
                f"{operation} failed for user {user_id}: {ex}",
                operation=operation,
                user_id=user_id,
            ) from ex
