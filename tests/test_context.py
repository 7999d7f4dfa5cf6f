from models.task import Task
from services.auth import SessionProvider
from services.connectivity import ConnectivityMonitor
from services.context import build_context

from fakes import FakeGateway, StaticSessions


def _drain(ctx):
    ctx.engine._get_executor().submit(lambda: None).result(timeout=5)


def test_build_context_wires_the_stack(db_engine):
    gateway = FakeGateway()
    monitor = ConnectivityMonitor(initial=True)
    ctx = build_context(db_engine=db_engine, sessions=StaticSessions(), gateway=gateway, monitor=monitor)
    gateway.seed("Remote")

    ctx.start()
    try:
        _drain(ctx)
        assert [t.title for t in ctx.tasks.list_tasks().active] == ["Remote"]
        assert len(gateway.subscriptions) == 1
    finally:
        ctx.shutdown()

    assert ctx.started is False
    assert gateway.subscriptions[0].cancelled is True


def test_start_pushes_records_queued_in_an_earlier_session(db_engine):
    gateway = FakeGateway()
    monitor = ConnectivityMonitor(lambda: True, initial=False, interval_sec=60)
    ctx = build_context(db_engine=db_engine, sessions=StaticSessions(), gateway=gateway, monitor=monitor)
    ctx.store.save_all([Task(id="queued", title="Queued")])

    ctx.start()
    try:
        _drain(ctx)
        assert monitor.is_online is True
        assert gateway.ops("insert") == ["Queued"]
        assert ctx.store.pending_count() == 0
    finally:
        ctx.shutdown()


def test_sign_in_attaches_change_channel_and_pushes(db_engine, tmp_path):
    gateway = FakeGateway()
    sessions = SessionProvider(tmp_path / "session.json", use_env=False)
    ctx = build_context(
        db_engine=db_engine, sessions=sessions, gateway=gateway, monitor=ConnectivityMonitor(initial=True)
    )
    ctx.store.save_all([Task(id="offline", title="Written before sign-in")])

    ctx.start()
    try:
        _drain(ctx)
        assert gateway.subscriptions == []
        assert gateway.ops("insert") == []

        ctx.sign_in("user-1")
        _drain(ctx)
        assert len(gateway.subscriptions) == 1
        assert gateway.ops("insert") == ["Written before sign-in"]

        ctx.sign_out()
        assert gateway.subscriptions[0].cancelled is True
        assert ctx.tasks.is_signed_in is False
    finally:
        ctx.shutdown()
