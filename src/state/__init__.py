"""
State and data stores plus the snapshot document.

This package defines the storage contracts the engine depends on, their
in-memory defaults, and the JSON snapshot format that can be encrypted and
persisted to S3.
"""

from .models import Snapshot
from .stores import (
    DataStore,
    MemoryDataStore,
    MemoryUserStateStore,
    SnapshotCapable,
    UserStateStore,
)

__all__ = [
    "DataStore",
    "MemoryDataStore",
    "MemoryUserStateStore",
    "Snapshot",
    "SnapshotCapable",
    "UserStateStore",
]
