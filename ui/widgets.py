# tasksync/ui/widgets.py
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import flet as ft

from core.settings import UI
from datetime_utils import ensure_utc
from models.task import SYNC_ERROR, SYNC_PENDING, Task
from ui import compat


def format_time(value: Optional[datetime]) -> str:
    if not value:
        return "never"
    return ensure_utc(value).astimezone().strftime("%H:%M:%S")


class SyncStatusBar:
    """Online/offline badge, pending counter, last sync time and Sync Now."""

    def __init__(
        self,
        on_sync: Callable[[], None],
        *,
        on_show_log: Optional[Callable[[], None]] = None,
        on_sign_in: Optional[Callable[[], None]] = None,
    ):
        self._on_sync = on_sync
        self.icon = ft.Icon(ft.Icons.WIFI_OFF, color=UI.theme.offline)
        self.title = ft.Text("Offline Mode", weight=ft.FontWeight.W_600)
        self.pending = ft.Text("", size=12, color=UI.theme.text_subtle)
        self.last_sync = ft.Text("", size=12, color=UI.theme.text_subtle)
        self.sync_btn = ft.OutlinedButton("Sync Now", icon=ft.Icons.SYNC, on_click=lambda e: self._on_sync())
        self.log_btn = ft.IconButton(
            icon=ft.Icons.RECEIPT_LONG,
            tooltip="Sync log",
            visible=on_show_log is not None,
            on_click=lambda e: on_show_log() if on_show_log else None,
        )
        self.sign_in_btn = ft.TextButton(
            "Sign in",
            icon=ft.Icons.LOGIN,
            visible=False,
            on_click=lambda e: on_sign_in() if on_sign_in else None,
        )
        self._can_sign_in = on_sign_in is not None

        self.view = ft.Card(
            content=ft.Container(
                padding=12,
                content=ft.Row(
                    [
                        ft.Row([self.icon, ft.Column([self.title, ft.Row([self.pending, self.last_sync], spacing=16)], spacing=2)]),
                        ft.Row([self.sign_in_btn, self.log_btn, self.sync_btn], spacing=4),
                    ],
                    alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                ),
            )
        )

    def render(self, *, online: bool, pending: int, last_sync: Optional[datetime], signed_in: bool = True):
        self.icon.name = ft.Icons.WIFI if online else ft.Icons.WIFI_OFF
        self.icon.color = UI.theme.online if online else UI.theme.offline
        self.title.value = "Online" if online else "Offline Mode"
        if not signed_in:
            self.title.value += " (not signed in)"
        self.pending.value = f"{pending} pending" if pending else "All synced"
        self.last_sync.value = f"Last sync {format_time(last_sync)}"
        self.sync_btn.visible = online and signed_in
        self.sign_in_btn.visible = self._can_sign_in and not signed_in


class CreateTaskForm:
    def __init__(self, on_create: Callable[[str, Optional[str]], None]):
        self._on_create = on_create
        self.title_tf = ft.TextField(label="What needs to be done?", on_submit=self._submit, expand=True)
        self.description_tf = ft.TextField(label="Add details... (optional)", multiline=True, min_lines=1, max_lines=4)
        self.add_btn = ft.FilledButton("Create Task", icon=ft.Icons.ADD, on_click=self._submit)
        self.view = ft.Column([ft.Row([self.title_tf, self.add_btn]), self.description_tf], spacing=8)

    def _submit(self, _):
        title = (self.title_tf.value or "").strip()
        if not title:
            return
        self._on_create(title, self.description_tf.value or None)
        self.title_tf.value = ""
        self.description_tf.value = ""


class TaskItem:
    def __init__(
        self,
        task: Task,
        *,
        on_toggle: Callable[[str], None],
        on_save: Callable[[str, str, Optional[str]], None],
        on_delete: Callable[[str], None],
    ):
        self.task = task
        self._on_toggle = on_toggle
        self._on_save = on_save
        self._on_delete = on_delete
        self.view = ft.Container(padding=8, border=ft.border.all(1, UI.theme.outline), border_radius=8)
        self._show_read_mode()

    def _badge(self) -> Optional[ft.Control]:
        if self.task.sync_status == SYNC_PENDING:
            return ft.Icon(ft.Icons.CLOUD_UPLOAD_OUTLINED, size=16, tooltip="Waiting to sync")
        if self.task.sync_status == SYNC_ERROR:
            return ft.Icon(
                ft.Icons.ERROR_OUTLINE,
                size=16,
                color=UI.theme.error,
                tooltip=self.task.last_error or "Sync failed",
            )
        return None

    def _show_read_mode(self):
        task = self.task
        text = [compat.strike_text(task.title, strike=task.completed, weight=ft.FontWeight.W_500)]
        if task.description:
            text.append(ft.Text(task.description, size=12, color=UI.theme.text_subtle))
        trailing = [
            ft.IconButton(icon=ft.Icons.EDIT, tooltip="Edit", on_click=lambda e: self._show_edit_mode()),
            ft.IconButton(icon=ft.Icons.DELETE_OUTLINE, tooltip="Delete", on_click=lambda e: self._on_delete(task.id)),
        ]
        badge = self._badge()
        if badge is not None:
            trailing.insert(0, badge)
        self.view.content = ft.Row(
            [
                ft.Checkbox(value=task.completed, on_change=lambda e: self._on_toggle(task.id)),
                ft.Column(text, spacing=2, expand=True),
                ft.Row(trailing, spacing=0),
            ]
        )

    def _show_edit_mode(self):
        title_tf = ft.TextField(value=self.task.title, dense=True)
        description_tf = ft.TextField(value=self.task.description or "", multiline=True, dense=True)

        def save(_):
            title = (title_tf.value or "").strip()
            if not title:
                return
            self._on_save(self.task.id, title, description_tf.value or None)

        def cancel(_):
            self._show_read_mode()
            self.view.update()

        self.view.content = ft.Column(
            [
                title_tf,
                description_tf,
                ft.Row(
                    [
                        ft.TextButton("Cancel", icon=ft.Icons.CLOSE, on_click=cancel),
                        ft.FilledButton("Save", icon=ft.Icons.CHECK, on_click=save),
                    ],
                    alignment=ft.MainAxisAlignment.END,
                ),
            ],
            spacing=6,
        )
        self.view.update()


__all__ = ["CreateTaskForm", "SyncStatusBar", "TaskItem", "format_time"]
