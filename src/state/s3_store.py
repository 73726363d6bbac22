from __future__ import annotations

import os
from typing import Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.fernet import Fernet, InvalidToken

from common.errors import StoreFailure
from common.logging import get_logger


# Environment variable names for convenience configuration
ENV_BUCKET = "FSM_SNAPSHOT_BUCKET"
ENV_KEY = "FSM_SNAPSHOT_KEY"
ENV_FERNET_KEY = "FSM_FERNET_KEY"

# S3 answers a failed If-Match / If-None-Match with 412, or 409 when two
# conditional writes race on the same key
_CONFLICT_CODES = ("PreconditionFailed", "412", "ConditionalRequestConflict", "409")
_MISSING_CODES = ("NoSuchKey", "404")

log = get_logger(__name__)


class OptimisticLockError(StoreFailure):
    """The snapshot object changed (or appeared) since it was last read."""


def _error_code(ex: ClientError) -> Optional[str]:
    return ex.response.get("Error", {}).get("Code")


class S3SnapshotStore:
    """
    Keeps one engine snapshot document in S3, encrypted with Fernet.

    Documents are opaque bytes here (`state.codec` owns the format). Every
    write is conditional so two processes checkpointing the same object
    cannot silently overwrite each other:

    - `write(doc, if_match=etag)` replaces the object only while its ETag is
      still `etag`.
    - `write(doc)` without an ETag creates the object and fails if one
      already exists.

    Both cases raise `OptimisticLockError`. S3 and decryption failures raise
    `StoreFailure` with `operation` set to "read" or "write".

    Environment variables (optional)
    - `FSM_SNAPSHOT_BUCKET`: S3 bucket for the snapshot object
    - `FSM_SNAPSHOT_KEY`:    S3 key (path) for the snapshot object
    - `FSM_FERNET_KEY`:      urlsafe base64-encoded key for Fernet
    """

    def __init__(
        self,
        *,
        bucket: str,
        key: str,
        fernet_key: str | bytes,
        s3: Optional[object] = None,
        region_name: Optional[str] = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        # Fernet accepts the urlsafe base64 key as str or bytes
        self._fernet = Fernet(fernet_key)
        self._s3 = s3 or boto3.client("s3", region_name=region_name)

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    @classmethod
    def from_env(cls, *, s3: Optional[object] = None) -> "S3SnapshotStore":
        values = {name: os.environ.get(name) for name in (ENV_BUCKET, ENV_KEY, ENV_FERNET_KEY)}
        missing = [name for name, val in values.items() if not val]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables for S3 snapshot store: {', '.join(missing)}"
            )
        return cls(
            bucket=values[ENV_BUCKET],
            key=values[ENV_KEY],
            fernet_key=values[ENV_FERNET_KEY],
            s3=s3,
        )

    def read(self) -> Tuple[Optional[bytes], Optional[str]]:
        """Fetch and decrypt the snapshot document.

        Returns (document, etag), or (None, None) when nothing was saved yet.
        """
        try:
            resp = self._s3.get_object(Bucket=self.bucket, Key=self.key)
            body = resp["Body"].read()
        except ClientError as ex:
            if _error_code(ex) in _MISSING_CODES:
                log.debug("fsm.s3.snapshot_missing", location=self.location)
                return (None, None)
            raise self._failure("read", ex) from ex
        except BotoCoreError as ex:
            raise self._failure("read", ex) from ex

        try:
            document = self._fernet.decrypt(body)
        except InvalidToken as ex:
            raise StoreFailure(
                f"cannot decrypt snapshot at {self.location}: wrong key or corrupt object",
                operation="read",
            ) from ex

        etag = resp.get("ETag")
        log.debug("fsm.s3.snapshot_read", location=self.location, etag=etag, size=len(document))
        return (document, etag)

    def write(self, document: bytes, *, if_match: Optional[str] = None) -> str:
        """Encrypt and store `document`; returns the new ETag.

        With `if_match` the object must still carry that ETag; without it the
        object must not exist yet.
        """
        condition = {"IfMatch": if_match} if if_match is not None else {"IfNoneMatch": "*"}
        try:
            resp = self._s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=self._fernet.encrypt(document),
                ContentType="application/octet-stream",
                **condition,
            )
        except ClientError as ex:
            if _error_code(ex) in _CONFLICT_CODES:
                expected = f"ETag {if_match}" if if_match is not None else "no object"
                raise OptimisticLockError(
                    f"{self.location} changed concurrently (expected {expected})",
                    operation="write",
                ) from ex
            raise self._failure("write", ex) from ex
        except BotoCoreError as ex:
            raise self._failure("write", ex) from ex

        etag = str(resp.get("ETag"))
        log.debug("fsm.s3.snapshot_written", location=self.location, etag=etag, created=if_match is None)
        return etag

    def _failure(self, operation: str, ex: Exception) -> StoreFailure:
        return StoreFailure(f"S3 {operation} of {self.location} failed: {ex}", operation=operation)
