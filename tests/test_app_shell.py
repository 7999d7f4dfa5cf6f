import pytest

from services.auth import SessionProvider
from services.connectivity import ConnectivityMonitor
from services.context import build_context
from ui import app_shell, compat
from ui.app_shell import AppShell

from fakes import FakeGateway


class FakePage:
    """Just enough of ``ft.Page`` for the shell outside a running app."""

    def __init__(self):
        self.controls = []
        self.opened = []
        self.closed = []
        self.updates = 0

    def add(self, *controls):
        self.controls.extend(controls)

    def update(self):
        self.updates += 1

    def open(self, control):
        self.opened.append(control)

    def close(self, control):
        self.closed.append(control)


@pytest.fixture()
def shell(db_engine, tmp_path, monkeypatch):
    monkeypatch.setattr(compat, "PAGE_HAS_OPEN", True)
    gateway = FakeGateway()
    ctx = build_context(
        db_engine=db_engine,
        sessions=SessionProvider(tmp_path / "session.json", use_env=False),
        gateway=gateway,
        monitor=ConnectivityMonitor(initial=True),
    )
    ctx.start()
    page = FakePage()
    shell = AppShell(page, ctx)
    shell.refresh()
    yield shell
    shell.unmount()
    ctx.shutdown()


def test_status_bar_opens_sync_log(shell, tmp_path, monkeypatch):
    log = tmp_path / "sync.log"
    log.write_text("first\nPush finished: 1 succeeded, 0 failed\n", encoding="utf-8")
    monkeypatch.setattr(app_shell, "SYNC_LOG_PATH", log)

    assert shell.status_bar.log_btn.visible is True
    shell.status_bar.log_btn.on_click(None)

    (dialog,) = shell.page.opened
    assert dialog.title.value == "Sync log"
    body = dialog.content.content.controls[0]
    assert body.value == "first\nPush finished: 1 succeeded, 0 failed"

    dialog.actions[0].on_click(None)
    assert shell.page.closed == [dialog]


def test_sync_log_missing_file(shell, tmp_path, monkeypatch):
    monkeypatch.setattr(app_shell, "SYNC_LOG_PATH", tmp_path / "absent.log")

    assert shell.read_sync_log() == "Sync log has not been created yet."


def test_sign_in_from_status_bar(shell):
    assert shell.status_bar.sign_in_btn.visible is True
    shell.status_bar.sign_in_btn.on_click(None)

    (dialog,) = shell.page.opened
    user_tf, token_tf = dialog.content.controls
    user_tf.value = "  user-1 "
    token_tf.value = ""
    dialog.actions[1].on_click(None)

    assert shell.page.closed == [dialog]
    assert shell.ctx.sessions.user_id() == "user-1"
    assert shell.ctx.sessions.access_token() is None
    assert shell.status_bar.sign_in_btn.visible is False
    assert len(shell.ctx.gateway.subscriptions) == 1
