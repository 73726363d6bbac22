from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from common.errors import FSMError, StoreFailure
from state.s3_store import S3SnapshotStore, OptimisticLockError


FERNET_KEY = Fernet.generate_key()


def _store(s3, fernet_key=FERNET_KEY) -> S3SnapshotStore:
    return S3SnapshotStore(s3=s3, bucket="b", key="fsm/snapshot.bin", fernet_key=fernet_key)


def test_read_missing_returns_none(fake_s3):
    document, etag = _store(fake_s3).read()
    assert document is None
    assert etag is None


def test_write_and_read_roundtrip_is_encrypted_at_rest(fake_s3):
    store = _store(fake_s3)

    doc = b'{"initial_state_id":"default","storage":{},"user_states":{"1":"a"}}'
    etag = store.write(doc)
    assert etag.startswith('"fake-')
    assert doc not in fake_s3.objects[("b", "fsm/snapshot.bin")]["Body"]

    back, read_etag = store.read()
    assert back == doc
    assert read_etag == etag


def test_read_garbage_is_store_failure(fake_s3):
    fake_s3.objects[("b", "fsm/snapshot.bin")] = {"Body": b"garbage", "ETag": '"x"'}

    with pytest.raises(StoreFailure) as excinfo:
        _store(fake_s3).read()
    assert excinfo.value.operation == "read"


def test_read_with_other_key_is_store_failure(fake_s3):
    _store(fake_s3).write(b"{}")
    with pytest.raises(StoreFailure):
        _store(fake_s3, fernet_key=Fernet.generate_key()).read()


def test_s3_errors_are_store_failures(fake_s3):
    store = _store(fake_s3)
    fake_s3.fail_with = "AccessDenied"

    with pytest.raises(StoreFailure) as excinfo:
        store.read()
    assert excinfo.value.operation == "read"

    with pytest.raises(StoreFailure) as excinfo:
        store.write(b"{}")
    assert excinfo.value.operation == "write"
    assert not isinstance(excinfo.value, OptimisticLockError)


def test_from_env_missing_vars_raises(monkeypatch):
    for name in ("FSM_SNAPSHOT_BUCKET", "FSM_SNAPSHOT_KEY", "FSM_FERNET_KEY"):
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(RuntimeError) as excinfo:
        S3SnapshotStore.from_env()
    assert "FSM_SNAPSHOT_BUCKET" in str(excinfo.value)


def test_from_env_builds_store(monkeypatch, fake_s3):
    monkeypatch.setenv("FSM_SNAPSHOT_BUCKET", "b")
    monkeypatch.setenv("FSM_SNAPSHOT_KEY", "k")
    monkeypatch.setenv("FSM_FERNET_KEY", FERNET_KEY.decode("ascii"))

    store = S3SnapshotStore.from_env(s3=fake_s3)
    assert store.location == "s3://b/k"


def test_write_with_if_match_succeeds(fake_s3):
    store = _store(fake_s3)

    etag1 = store.write(b"one")
    etag2 = store.write(b"two", if_match=etag1)
    assert etag2 != etag1

    back, read_etag = store.read()
    assert back == b"two"
    assert read_etag == etag2


def test_write_with_stale_etag_raises_lock_error(fake_s3):
    store1 = _store(fake_s3)
    store2 = _store(fake_s3)

    etag1 = store1.write(b"one")
    store1.write(b"two", if_match=etag1)

    with pytest.raises(OptimisticLockError) as excinfo:
        store2.write(b"three", if_match=etag1)
    assert isinstance(excinfo.value, StoreFailure)
    assert isinstance(excinfo.value, FSMError)
    assert store1.read()[0] == b"two"


def test_write_without_etag_refuses_to_overwrite(fake_s3):
    store = _store(fake_s3)
    store.write(b"first")

    with pytest.raises(OptimisticLockError):
        store.write(b"second")
    assert store.read()[0] == b"first"
