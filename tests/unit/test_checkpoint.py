from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from common.errors import StoreFailure
from fsm import Engine
from fsm.checkpoint import Checkpointer
from state.s3_store import OptimisticLockError, S3SnapshotStore


FERNET_KEY = Fernet.generate_key()


def _store(s3, fernet_key=FERNET_KEY) -> S3SnapshotStore:
    return S3SnapshotStore(s3=s3, bucket="b", key="fsm/snapshot.bin", fernet_key=fernet_key)


def test_load_without_document_leaves_engine_empty(fake_s3):
    engine = Engine("default")
    cp = Checkpointer(engine, _store(fake_s3))
    assert cp.load() is False
    assert cp.etag is None
    assert engine.current(1) == "default"


def test_save_then_load_into_new_engine(fake_s3):
    first = Engine("default")
    first.transition(None, 42, "ask_name")
    first.set(42, "chat", "chat-42")
    saver = Checkpointer(first, _store(fake_s3))
    saver.load()
    etag = saver.save()

    second = Engine("default")
    cp = Checkpointer(second, _store(fake_s3))
    assert cp.load() is True
    assert cp.etag == etag
    assert second.current(42) == "ask_name"
    assert second.get(42, "chat") == "chat-42"


def test_repeated_saves_follow_the_etag(fake_s3):
    engine = Engine("default")
    cp = Checkpointer(engine, _store(fake_s3))
    cp.load()

    first = cp.save()
    engine.transition(None, 1, "x")
    second = cp.save()

    assert second != first
    assert cp.etag == second


def test_two_writers_on_empty_bucket_do_not_overwrite(fake_s3):
    a_engine = Engine("default")
    a_engine.transition(None, 1, "from-a")
    a = Checkpointer(a_engine, _store(fake_s3))
    b = Checkpointer(Engine("default"), _store(fake_s3))
    assert a.load() is False
    assert b.load() is False

    a.save()
    with pytest.raises(OptimisticLockError):
        b.save()

    check = Engine("default")
    Checkpointer(check, _store(fake_s3)).load()
    assert check.current(1) == "from-a"


def test_writer_with_stale_etag_is_rejected(fake_s3):
    Checkpointer(Engine("default"), _store(fake_s3)).save()

    a = Checkpointer(Engine("default"), _store(fake_s3))
    b = Checkpointer(Engine("default"), _store(fake_s3))
    a.load()
    b.load()

    a.save()
    with pytest.raises(OptimisticLockError):
        b.save()


def test_load_with_wrong_key_is_store_failure(fake_s3):
    Checkpointer(Engine("default"), _store(fake_s3)).save()

    engine = Engine("default")
    engine.transition(None, 5, "kept")
    cp = Checkpointer(engine, _store(fake_s3, fernet_key=Fernet.generate_key()))
    with pytest.raises(StoreFailure) as excinfo:
        cp.load()
    assert excinfo.value.operation == "read"
    assert engine.current(5) == "kept"
