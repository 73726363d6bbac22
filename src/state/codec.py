from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from common.errors import StoreFailure

from .models import Snapshot


_SCALARS = (str, int, float, bool, type(None))


def _check_value(value: Any, path: str) -> None:
    """Reject anything JSON would drop or reshape on the way back.

    Only exact str/int/float/bool/None, lists, and dicts with str keys survive
    a round-trip unchanged; tuples, sets, subclasses (IntEnum, OrderedDict...)
    and non-str dict keys do not.
    """
    kind = type(value)
    if kind in _SCALARS:
        return
    if kind is list:
        for i, item in enumerate(value):
            _check_value(item, f"{path}[{i}]")
        return
    if kind is dict:
        for k, item in value.items():
            if type(k) is not str:
                raise StoreFailure(
                    f"{path} has non-string key {k!r}; JSON would turn it into a string",
                    operation="snapshot",
                )
            _check_value(item, f"{path}[{k!r}]")
        return
    raise StoreFailure(
        f"{path} holds {kind.__name__}, which does not round-trip through JSON",
        operation="snapshot",
    )


def encode_snapshot(snapshot: Snapshot) -> bytes:
    """Serialize a snapshot to deterministic UTF-8 JSON.

    Raises StoreFailure when a stored value has no faithful JSON representation.
    """
    for user_id, bag in snapshot.storage.items():
        for key, value in bag.items():
            _check_value(value, f"storage[{user_id}][{key!r}]")
    try:
        # Stable key order, no extra whitespace
        return json.dumps(
            snapshot.model_dump(), separators=(",", ":"), sort_keys=True, allow_nan=False
        ).encode("utf-8")
    except (TypeError, ValueError) as ex:
        raise StoreFailure(f"snapshot is not serializable: {ex}", operation="snapshot") from ex


def decode_snapshot(data: bytes | str) -> Snapshot:
    """Parse and validate a snapshot document; raises StoreFailure on bad input."""
    try:
        raw = json.loads(data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data)
    except (UnicodeDecodeError, ValueError) as ex:
        raise StoreFailure("snapshot document is not valid JSON", operation="restore") from ex
    if not isinstance(raw, dict):
        raise StoreFailure("snapshot document must be a JSON object", operation="restore")
    try:
        return Snapshot.model_validate(raw)
    except ValidationError as ex:
        raise StoreFailure(f"snapshot document is invalid: {ex}", operation="restore") from ex


def build_snapshot(initial_state_id: str, user_states: dict, storage: dict) -> Snapshot:
    """Validate copied store contents into a Snapshot; StoreFailure on bad keys/types."""
    try:
        return Snapshot(initial_state_id=initial_state_id, user_states=user_states, storage=storage)
    except ValidationError as ex:
        raise StoreFailure(f"store contents cannot be snapshotted: {ex}", operation="snapshot") from ex
