from __future__ import annotations

import copy
import threading
from typing import Any, Dict, Mapping, Protocol, runtime_checkable

from common.errors import NotFoundError


UserStates = Dict[int, str]
UserData = Dict[int, Dict[str, Any]]


@runtime_checkable
class UserStateStore(Protocol):
    """
    Contract for the per-user current-state store.

    - `set` upserts; it raises `StoreFailure` only when the backing medium fails.
    - `exists` is True iff an entry has ever been written for the user.
    - `get` raises `NotFoundError` when no entry exists. Implementations must
      not signal "missing" with an empty string.
    """

    def set(self, user_id: int, state_id: str) -> None: ...

    def exists(self, user_id: int) -> bool: ...

    def get(self, user_id: int) -> str: ...


@runtime_checkable
class DataStore(Protocol):
    """
    Contract for the per-user key/value data store.

    - `set` upserts, creating the user's bag on first write.
    - `get` raises `NotFoundError` if the user has no bag at all and returns
      None if the bag exists but `key` is unset.
    - `delete` removes `key` if present; absent keys and bags are a no-op.
    """

    def set(self, user_id: int, key: str, value: Any) -> None: ...

    def get(self, user_id: int, key: str) -> Any: ...

    def delete(self, user_id: int, key: str) -> None: ...


@runtime_checkable
class SnapshotCapable(Protocol):
    """Stores that can hand out a copy of, and wholesale replace, their contents."""

    def dump(self) -> Dict[int, Any]: ...

    def replace(self, contents: Mapping[int, Any]) -> None: ...


class MemoryUserStateStore:
    """In-memory `UserStateStore` guarded by a single lock."""

    def __init__(self) -> None:
        self._states: UserStates = {}
        self._lock = threading.Lock()

    def set(self, user_id: int, state_id: str) -> None:
        with self._lock:
            self._states[user_id] = state_id

    def exists(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._states

    def get(self, user_id: int) -> str:
        with self._lock:
            try:
                return self._states[user_id]
            except KeyError:
                raise NotFoundError(f"no state recorded for user {user_id}", user_id=user_id) from None

    def dump(self) -> UserStates:
        with self._lock:
            return dict(self._states)

    def replace(self, contents: Mapping[int, str]) -> None:
        fresh = {int(uid): str(sid) for uid, sid in contents.items()}
        with self._lock:
            self._states = fresh

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


class MemoryDataStore:
    """
    In-memory `DataStore`: one dict per user, all behind one lock.

    Bags are created under the same lock that guards the outer mapping, so two
    concurrent first writes for a user never produce two bags.
    """

    def __init__(self) -> None:
        self._bags: UserData = {}
        self._lock = threading.Lock()

    def set(self, user_id: int, key: str, value: Any) -> None:
        with self._lock:
            bag = self._bags.get(user_id)
            if bag is None:
                bag = {}
                self._bags[user_id] = bag
            bag[key] = value

    def get(self, user_id: int, key: str) -> Any:
        with self._lock:
            bag = self._bags.get(user_id)
            if bag is None:
                raise NotFoundError(
                    f"no data recorded for user {user_id} (key {key!r})",
                    user_id=user_id,
                    key=key,
                )
            return bag.get(key)

    def delete(self, user_id: int, key: str) -> None:
        with self._lock:
            bag = self._bags.get(user_id)
            if bag is not None:
                bag.pop(key, None)

    def dump(self) -> UserData:
        # Deep copy so the snapshot cannot alias values still held by the store
        with self._lock:
            return copy.deepcopy(self._bags)

    def replace(self, contents: Mapping[int, Mapping[str, Any]]) -> None:
        fresh = {int(uid): dict(bag) for uid, bag in copy.deepcopy(dict(contents)).items()}
        with self._lock:
            self._bags = fresh
