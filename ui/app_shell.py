# ui/app_shell.py
from __future__ import annotations

import asyncio
from typing import Optional

import flet as ft

from core.errors import StorageError
from core.settings import SYNC_LOG_PATH, UI
from services.context import AppContext
from ui import compat
from ui.widgets import CreateTaskForm, SyncStatusBar, TaskItem


class AppShell:
    def __init__(self, page: ft.Page, context: AppContext):
        self.page = page
        self.ctx = context
        self.tasks = context.tasks

        self.page.title = UI.app_title
        self.page.horizontal_alignment = ft.CrossAxisAlignment.CENTER
        self.page.vertical_alignment = ft.MainAxisAlignment.START

        self.status_bar = SyncStatusBar(
            on_sync=self.sync_now,
            on_show_log=self.show_sync_log,
            on_sign_in=self.show_sign_in,
        )
        self.create_form = CreateTaskForm(on_create=self.create_task)
        self.active_header = ft.Text("Active", size=18, weight=ft.FontWeight.W_600)
        self.active_list = ft.Column(spacing=8)
        self.completed_header = ft.Text("Completed", size=18, weight=ft.FontWeight.W_600)
        self.completed_list = ft.Column(spacing=8)

        self.root = ft.Container(
            width=UI.content_max_width,
            padding=20,
            content=ft.Column(
                [
                    self.status_bar.view,
                    self.create_form.view,
                    self.active_header,
                    self.active_list,
                    ft.Divider(),
                    self.completed_header,
                    self.completed_list,
                ],
                spacing=14,
                scroll=ft.ScrollMode.AUTO,
            ),
            expand=True,
        )

        self._status_task: Optional[asyncio.Task] = None
        self.tasks.subscribe(self.refresh)

    # ---------- lifecycle ----------
    def mount(self):
        self.page.controls.clear()
        self.page.add(self.root)
        self.refresh()
        self._status_task = self.page.run_task(self._status_loop)

    def unmount(self):
        self.tasks.unsubscribe(self.refresh)
        try:
            if self._status_task:
                self._status_task.cancel()
        except Exception:
            pass
        self._status_task = None

    async def _status_loop(self):
        # Keeps "last sync" and the connectivity badge fresh between events.
        while True:
            await asyncio.sleep(UI.status_refresh_interval_sec)
            self._render_status()
            self.page.update()

    # ---------- rendering ----------
    def refresh(self):
        listing = self.tasks.list_tasks()
        self.active_header.value = f"Active ({len(listing.active)})"
        self.completed_header.value = f"Completed ({len(listing.completed)})"
        self.active_list.controls = [self._item(task).view for task in listing.active] or [
            ft.Text("No active tasks", color=UI.theme.text_subtle)
        ]
        self.completed_list.controls = [self._item(task).view for task in listing.completed]
        self._render_status()
        self.page.update()

    def _render_status(self):
        self.status_bar.render(
            online=self.tasks.is_online,
            pending=self.tasks.pending_count,
            last_sync=self.tasks.last_sync_time,
            signed_in=self.tasks.is_signed_in,
        )

    def _item(self, task) -> TaskItem:
        return TaskItem(
            task,
            on_toggle=self.toggle_task,
            on_save=self.save_task,
            on_delete=self.delete_task,
        )

    # ---------- actions ----------
    def create_task(self, title: str, description: Optional[str]):
        self._guard(lambda: self.tasks.create_task(title, description))
        if not self.tasks.is_online:
            compat.show_snack(self.page, "Task saved offline. Will sync when online.")

    def toggle_task(self, task_id: str):
        self._guard(lambda: self.tasks.toggle_completed(task_id))

    def save_task(self, task_id: str, title: str, description: Optional[str]):
        self._guard(lambda: self.tasks.update_task(task_id, title=title, description=description))

    def delete_task(self, task_id: str):
        self._guard(lambda: self.tasks.delete_task(task_id))

    def sync_now(self):
        report = self._guard(self.tasks.sync_now)
        if report is not None:
            compat.show_snack(self.page, report.summary())

    def _guard(self, action):
        try:
            return action()
        except (ValueError, StorageError) as exc:
            compat.show_snack(self.page, f"Error: {exc}")
            return None

    def read_sync_log(self, lines: int = 100) -> str:
        try:
            with open(SYNC_LOG_PATH, "r", encoding="utf-8") as fh:
                content = fh.readlines()
        except FileNotFoundError:
            return "Sync log has not been created yet."
        return "\n".join(line.rstrip("\n") for line in content[-lines:])

    def show_sync_log(self):
        body = ft.Text(self.read_sync_log(), selectable=True, size=12, font_family="monospace")
        dialog = ft.AlertDialog(
            title=ft.Text("Sync log"),
            content=ft.Container(ft.Column([body], scroll=ft.ScrollMode.AUTO), width=640, height=420),
        )
        dialog.actions = [ft.TextButton("Close", on_click=lambda e: compat.close_dialog(self.page, dialog))]
        compat.open_dialog(self.page, dialog)

    def show_sign_in(self):
        user_tf = ft.TextField(label="User id", autofocus=True)
        token_tf = ft.TextField(label="Access token (optional)", password=True, can_reveal_password=True)
        dialog = ft.AlertDialog(title=ft.Text("Sign in"), content=ft.Column([user_tf, token_tf], tight=True))

        def submit(_):
            user_id = (user_tf.value or "").strip()
            if not user_id:
                user_tf.error_text = "Required"
                user_tf.update()
                return
            compat.close_dialog(self.page, dialog)
            self._guard(lambda: self.ctx.sign_in(user_id, token_tf.value or None))
            self.refresh()

        dialog.actions = [
            ft.TextButton("Cancel", on_click=lambda e: compat.close_dialog(self.page, dialog)),
            ft.FilledButton("Sign in", on_click=submit),
        ]
        compat.open_dialog(self.page, dialog)
