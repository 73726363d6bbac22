from __future__ import annotations

from typing import Dict, Optional, Tuple

import pytest
from botocore.exceptions import ClientError


class _FakeBody:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


class FakeS3:
    """In-memory S3 client honoring put_object's IfMatch / IfNoneMatch."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str], Dict[str, object]] = {}
        self.fail_with: Optional[str] = None
        self._counter = 0

    def _maybe_fail(self, op: str) -> None:
        if self.fail_with:
            raise ClientError({"Error": {"Code": self.fail_with}}, op)

    def put_object(
        self,
        *,
        Bucket: str,
        Key: str,
        Body: bytes,
        ContentType: str,
        IfMatch: Optional[str] = None,
        IfNoneMatch: Optional[str] = None,
    ):
        self._maybe_fail("PutObject")
        current = self.objects.get((Bucket, Key))
        if IfNoneMatch == "*" and current is not None:
            raise ClientError({"Error": {"Code": "PreconditionFailed"}}, "PutObject")
        if IfMatch is not None and (current is None or current["ETag"] != IfMatch):
            raise ClientError({"Error": {"Code": "PreconditionFailed"}}, "PutObject")
        self._counter += 1
        etag = f'"fake-{self._counter}"'
        self.objects[(Bucket, Key)] = {"Body": Body, "ETag": etag}
        return {"ETag": etag}

    def get_object(self, *, Bucket: str, Key: str):
        self._maybe_fail("GetObject")
        item = self.objects.get((Bucket, Key))
        if not item:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": _FakeBody(item["Body"]), "ETag": item["ETag"]}


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()
