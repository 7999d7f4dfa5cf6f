from datetime import datetime, timedelta

import pytest
from sqlalchemy import text
from sqlmodel import create_engine

from core.errors import StorageError
from datetime_utils import UTC, utc_now
from models.task import SYNC_ERROR, SYNC_PENDING, SYNC_SYNCED, Task
from services.local_store import LocalTaskStore
from storage.db import init_db, make_session_factory


def _task(task_id, title=None, **extra):
    return Task(id=task_id, title=title or task_id, **extra)


def test_save_all_then_load_all_keeps_order(store):
    store.save_all([_task("b"), _task("a"), _task("c")])

    loaded = store.load_all()
    assert [t.id for t in loaded] == ["b", "a", "c"]
    assert [t.position for t in loaded] == [0, 1, 2]


def test_save_all_replaces_previous_contents(store):
    store.save_all([_task("a"), _task("b")])
    store.save_all([_task("c")])

    assert [t.id for t in store.load_all()] == ["c"]


def test_save_all_rejects_duplicate_ids(store):
    store.save_all([_task("a")])
    with pytest.raises(StorageError):
        store.save_all([_task("x"), _task("x")])
    assert [t.id for t in store.load_all()] == ["a"]


def test_load_all_on_empty_store(store):
    assert store.load_all() == []
    assert store.pending_count() == 0


def test_loaded_timestamps_are_utc(store):
    created = datetime(2024, 3, 1, 12, 30, 15, 123456, tzinfo=UTC)
    store.save_all([_task("a", created_at=created, updated_at=created)])

    loaded = store.load_all()[0]
    assert loaded.created_at == created
    assert loaded.created_at.tzinfo is not None


def test_editing_saves_mutations(store):
    store.save_all([_task("a")])

    with store.editing() as tasks:
        tasks[0].title = "renamed"
        tasks.append(_task("b"))

    assert [(t.id, t.title) for t in store.load_all()] == [("a", "renamed"), ("b", "b")]


def test_editing_discards_changes_when_body_raises(store):
    store.save_all([_task("a")])

    with pytest.raises(RuntimeError):
        with store.editing() as tasks:
            tasks.clear()
            raise RuntimeError("abort")

    assert [t.id for t in store.load_all()] == ["a"]


def test_get_matches_local_and_server_id(store):
    store.save_all([_task("local-1", server_id="srv-9")])

    assert store.get("local-1").id == "local-1"
    assert store.get("srv-9").id == "local-1"
    assert store.get("missing") is None
    assert store.get("") is None


def test_upsert_and_remove(store):
    store.upsert(_task("a"))
    store.upsert(_task("a", title="second"))

    assert [t.title for t in store.load_all()] == ["second"]
    assert store.remove("a") is True
    assert store.remove("a") is False


def test_pending_count_counts_everything_not_synced(store):
    store.save_all(
        [
            _task("p", sync_status=SYNC_PENDING),
            _task("e", sync_status=SYNC_ERROR, error_kind="validation"),
            _task("d", sync_status=SYNC_PENDING, server_id="srv-1", is_deleted=True),
            _task("s", sync_status=SYNC_SYNCED, server_id="srv-2"),
        ]
    )
    assert store.pending_count() == 3


def test_meta_timestamps_roundtrip(store):
    assert store.get_last_pull_at() is None
    assert store.get_last_push_at() is None

    moment = utc_now() - timedelta(minutes=5)
    store.set_last_pull_at(moment)
    store.set_last_push_at()

    assert store.get_last_pull_at() == moment
    assert store.get_last_push_at() >= moment
    assert store.get_meta().last_pull_at == moment


def test_migrations_upgrade_old_database(tmp_path):
    engine = create_engine(f"sqlite:///{(tmp_path / 'old.db').as_posix()}")
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE task (
                    id VARCHAR PRIMARY KEY,
                    server_id VARCHAR,
                    title VARCHAR NOT NULL,
                    description VARCHAR,
                    completed BOOLEAN NOT NULL,
                    created_at DATETIME NOT NULL,
                    updated_at DATETIME NOT NULL,
                    is_deleted BOOLEAN NOT NULL,
                    last_synced_at DATETIME,
                    sync_status VARCHAR NOT NULL
                )
                """
            )
        )
        conn.execute(
            text(
                "INSERT INTO task VALUES "
                "('b', NULL, 'second', NULL, 0, '2024-01-02 00:00:00.000000', '2024-01-02 00:00:00.000000', 0, NULL, 'error'),"
                "('a', NULL, 'first', NULL, 0, '2024-01-01 00:00:00.000000', '2024-01-01 00:00:00.000000', 0, NULL, 'pending')"
            )
        )

    init_db(engine)
    init_db(engine)  # idempotent

    store = LocalTaskStore(make_session_factory(engine))
    loaded = store.load_all()
    assert [t.id for t in loaded] == ["a", "b"]
    assert loaded[1].error_kind == "transport"
    assert loaded[0].error_kind is None
    engine.dispose()
