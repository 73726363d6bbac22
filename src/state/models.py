from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class Snapshot(BaseModel):
    """
    Portable snapshot of an engine's mutable state.

    Fields
    - initial_state_id: the engine's initial state at the time of the snapshot.
    - user_states: current state per user id (e.g., {42: "ask_name"}).
    - storage: per-user data bags keyed by user id, each mapping a string key
      to a JSON-representable value (e.g., {7: {"name": "Ann", "age": "30"}}).

    Notes
    - The serialized form is a JSON object; user ids become decimal string keys
      and are coerced back to int on load.
    - Unknown fields are ignored on load so newer documents stay readable.
    """

    model_config = ConfigDict(extra="ignore")

    initial_state_id: str
    user_states: Dict[int, str] = Field(
        default_factory=dict,
        description="Map of user id to current state id",
    )
    storage: Dict[int, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Map of user id to that user's key/value data",
    )
