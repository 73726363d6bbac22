from __future__ import annotations

from typing import Optional

from common.logging import get_logger
from state.s3_store import S3SnapshotStore

from .engine import Engine


log = get_logger(__name__)


class Checkpointer:
    """
    Persists an engine's snapshot to S3 across restarts.

    `load()` restores the engine from the stored document (if any) and
    remembers its ETag; `save()` writes a fresh snapshot conditioned on that
    ETag, so a concurrent writer surfaces as `OptimisticLockError` instead of
    a silently lost update. When nothing was stored at load time, the first
    save only succeeds if the object still does not exist.

    Read, decrypt and decode failures are all `StoreFailure`.
    """

    def __init__(self, engine: Engine, store: S3SnapshotStore) -> None:
        self._engine = engine
        self._store = store
        self._etag: Optional[str] = None

    @property
    def etag(self) -> Optional[str]:
        return self._etag

    def load(self) -> bool:
        """Restore from the stored snapshot; False if none exists yet."""
        document, etag = self._store.read()
        if document is None:
            self._etag = None
            log.info("fsm.checkpoint.empty", location=self._store.location)
            return False
        self._engine.restore(document)
        self._etag = etag
        log.info("fsm.checkpoint.loaded", location=self._store.location, etag=etag)
        return True

    def save(self) -> str:
        document = self._engine.snapshot()
        self._etag = self._store.write(document, if_match=self._etag)
        log.info("fsm.checkpoint.saved", location=self._store.location, etag=self._etag)
        return self._etag
