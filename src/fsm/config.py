from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from state.stores import DataStore, MemoryDataStore, MemoryUserStateStore, UserStateStore


ENV_MAX_DEPTH = "FSM_MAX_DEPTH"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


@dataclass
class EngineConfig:
    """
    Explicit engine configuration.

    Fields (None means "use the default")
    - state_store: replaces the default `MemoryUserStateStore`.
    - data_store: replaces the default `MemoryDataStore`.
    - max_depth: bound on nested transitions per thread (a callback calling
      `transition` counts as one level). None leaves recursion unbounded.

    Substitute stores must keep the NotFoundError/StoreFailure semantics of
    the in-memory ones.
    """

    state_store: Optional[UserStateStore] = None
    data_store: Optional[DataStore] = None
    max_depth: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_depth is not None and self.max_depth <= 0:
            raise ValueError("max_depth must be > 0")

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        raw = _getenv(ENV_MAX_DEPTH)
        max_depth: Optional[int] = None
        if raw is not None:
            try:
                max_depth = int(raw)
            except ValueError:
                raise ValueError(f"{ENV_MAX_DEPTH} must be an integer, got {raw!r}") from None
        values = {"max_depth": max_depth}
        values.update(overrides)
        return cls(**values)

    def resolve_state_store(self) -> UserStateStore:
        return self.state_store if self.state_store is not None else MemoryUserStateStore()

    def resolve_data_store(self) -> DataStore:
        return self.data_store if self.data_store is not None else MemoryDataStore()
