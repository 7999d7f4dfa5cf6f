import flet as ft

TEXT_ACCEPTS_DECORATION = "decoration" in ft.Text.__init__.__code__.co_varnames
PAGE_HAS_OPEN = hasattr(ft.Page, "open")


def strike_text(text: str, *, strike: bool = False, **kwargs):
    if TEXT_ACCEPTS_DECORATION:
        t = ft.Text(text, **kwargs)
        if strike:
            t.decoration = ft.TextDecoration.LINE_THROUGH
        return t
    return ft.Text(
        text,
        style=ft.TextStyle(decoration=ft.TextDecoration.LINE_THROUGH if strike else None),
        **kwargs,
    )


def show_snack(page: ft.Page, text: str):
    bar = ft.SnackBar(ft.Text(text))
    if PAGE_HAS_OPEN:
        page.open(bar)
        return
    page.snack_bar = bar
    page.snack_bar.open = True
    page.update()


def open_dialog(page: ft.Page, dialog: ft.AlertDialog):
    if PAGE_HAS_OPEN:
        page.open(dialog)
        return
    page.dialog = dialog
    dialog.open = True
    page.update()


def close_dialog(page: ft.Page, dialog: ft.AlertDialog):
    if PAGE_HAS_OPEN:
        page.close(dialog)
        return
    dialog.open = False
    page.update()
