from datetime import datetime, timedelta

import pytest

from datetime_utils import UTC
from models.task import SYNC_ERROR, SYNC_PENDING, SYNC_SYNCED, Task


def test_create_task_is_local_first(service, store):
    task = service.create_task("  Write report  ", "  draft  ")

    saved = store.get(task.id)
    assert saved.title == "Write report"
    assert saved.description == "draft"
    assert saved.sync_status == SYNC_PENDING
    assert saved.server_id is None
    assert saved.completed is False


def test_create_task_rejects_blank_title(service, store):
    with pytest.raises(ValueError):
        service.create_task("   ")
    assert store.load_all() == []


def test_update_task_bumps_timestamp_and_clears_error(service, store):
    stamp = datetime(2024, 1, 1, tzinfo=UTC)
    store.save_all(
        [
            Task(
                id="a",
                server_id="srv-1",
                title="Old",
                updated_at=stamp,
                sync_status=SYNC_ERROR,
                error_kind="validation",
                last_error="bad",
            )
        ]
    )

    updated = service.update_task("a", title="New", description="")

    assert updated.title == "New"
    assert updated.description is None
    assert updated.updated_at > stamp
    assert updated.sync_status == SYNC_PENDING
    assert updated.last_error is None and updated.error_kind is None


def test_update_task_validates_fields(service):
    task = service.create_task("Task")

    with pytest.raises(ValueError):
        service.update_task(task.id, priority=3)
    with pytest.raises(ValueError):
        service.update_task(task.id, title="")


def test_update_of_missing_or_deleted_task_returns_none(service, store):
    store.save_all([Task(id="gone", server_id="srv-1", title="x", is_deleted=True)])

    assert service.update_task("missing", title="x") is None
    assert service.update_task("gone", title="x") is None


def test_toggle_completed_moves_between_sections(service):
    task = service.create_task("Toggle me")

    service.toggle_completed(task.id)
    listing = service.list_tasks()
    assert [t.id for t in listing.completed] == [task.id]
    assert listing.active == []

    service.toggle_completed(task.id)
    assert [t.id for t in service.list_tasks().active] == [task.id]


def test_list_tasks_newest_first_and_hides_deleted(service, store):
    base = datetime(2024, 5, 1, tzinfo=UTC)
    store.save_all(
        [
            Task(id="old", title="old", created_at=base),
            Task(id="new", title="new", created_at=base + timedelta(days=2)),
            Task(id="mid", title="mid", created_at=base + timedelta(days=1), completed=True),
            Task(id="del", title="del", created_at=base + timedelta(days=3), server_id="srv", is_deleted=True),
        ]
    )

    listing = service.list_tasks()

    assert [t.id for t in listing.active] == ["new", "old"]
    assert [t.id for t in listing.completed] == ["mid"]


def test_delete_task_unknown_returns_false(service):
    assert service.delete_task("nope") is False


def test_delete_synced_task_offline_keeps_tombstone(service, store):
    store.save_all([Task(id="srv-1", server_id="srv-1", title="x", sync_status=SYNC_SYNCED)])

    assert service.delete_task("srv-1") is True

    tombstone = store.get("srv-1")
    assert tombstone.is_deleted is True
    assert tombstone.sync_status == SYNC_PENDING
    assert service.get_task("srv-1") is None
    assert service.pending_count == 1


def test_subscribers_hear_local_changes(service):
    events = []

    def listener():
        events.append("changed")

    service.subscribe(listener)
    task = service.create_task("Observed")
    service.update_task(task.id, completed=True)
    service.unsubscribe(listener)
    service.delete_task(task.id)

    assert events == ["changed", "changed"]


def test_failing_subscriber_does_not_break_mutation(service, store):
    def broken():
        raise RuntimeError("ui gone")

    service.subscribe(broken)
    task = service.create_task("Still saved")

    assert store.get(task.id) is not None


def test_sync_now_offline_reports_skip(service):
    service.create_task("Queued")

    report = service.sync_now()

    assert report.skipped is True
    assert report.summary() == "Sync skipped: offline"


def test_sync_now_with_nothing_queued_refreshes(service, gateway, monitor, store):
    monitor.set_online(True)
    gateway.seed("Remote")
    gateway.calls.clear()

    report = service.sync_now()

    assert report.summary() == "All tasks are synced"
    assert len(gateway.ops("fetch_all")) == 1
    assert [t.title for t in store.load_all()] == ["Remote"]
    assert service.last_sync_time is not None


def test_observable_state(service, monitor):
    assert service.is_online is False
    assert service.is_signed_in is True
    assert service.last_sync_time is None

    monitor.set_online(True)
    assert service.is_online is True
    assert service.refresh() is False
