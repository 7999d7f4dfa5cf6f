# tasksync/main.py
import os, sys
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
import logging

import flet as ft

from core.settings import APP_NAME, UI
from services.context import build_context
from ui.app_shell import AppShell


logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def main(page: ft.Page):
    page.title = UI.app_title
    page.theme_mode = UI.theme_mode
    page.theme = ft.Theme(color_scheme_seed=UI.color_scheme_seed)
    page.appbar = ft.AppBar(title=ft.Text(APP_NAME), center_title=False)
    page.padding = 0
    page.window_min_width = UI.window_min_width
    page.window_min_height = UI.window_min_height

    ctx = build_context()
    shell = AppShell(page, ctx)

    def teardown(_=None):
        shell.unmount()
        ctx.shutdown()

    page.on_disconnect = teardown
    page.on_close = teardown

    shell.mount()
    ctx.start()


def main_cli():
    ft.app(target=main)


if __name__ == "__main__":
    main_cli()
