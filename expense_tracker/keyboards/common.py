from typing import Iterable, Sequence

from aiogram.utils.keyboard import InlineKeyboardBuilder, ReplyKeyboardBuilder
from aiogram.types import (
    InlineKeyboardMarkup, InlineKeyboardButton, KeyboardButton, ReplyKeyboardMarkup, WebAppInfo
)

from expense_tracker.flows.events import (
    BUTTON_BACK, BUTTON_MAIN_MENU, CALLBACK_BACK, CALLBACK_MAIN_MENU, callback_data
)


def button(text: str, name: str, data: object = "") -> InlineKeyboardButton:
    return InlineKeyboardButton(text=text, callback_data=callback_data(name, data))

def main_menu_button() -> InlineKeyboardButton:
    return InlineKeyboardButton(text=BUTTON_MAIN_MENU, callback_data=CALLBACK_MAIN_MENU)

def back_button() -> InlineKeyboardButton:
    return InlineKeyboardButton(text=BUTTON_BACK, callback_data=CALLBACK_BACK)


# ================== Inline keyboards ==================
def kb_list(
    buttons: Iterable[InlineKeyboardButton],
    *,
    columns: int = 1,
    back: bool = False,
    main_menu: bool = False,
) -> InlineKeyboardMarkup:
    """One button per row (or `columns` per row) followed by the navigation rows."""
    kb = InlineKeyboardBuilder()
    row_buf = []
    for b in buttons:
        row_buf.append(b)
        if len(row_buf) == columns:
            kb.row(*row_buf); row_buf = []
    if row_buf: kb.row(*row_buf)
    if back:
        kb.row(back_button())
    if main_menu:
        kb.row(main_menu_button())
    return kb.as_markup()

def kb_navigation(back: bool = True, main_menu: bool = True) -> InlineKeyboardMarkup:
    return kb_list([], back=back, main_menu=main_menu)


# ================== Reply keyboards ==================
def kb_main_menu(labels: Sequence[str]) -> ReplyKeyboardMarkup:
    """Main menu labels in rows of 2."""
    kb = ReplyKeyboardBuilder()
    for label in labels:
        kb.add(KeyboardButton(text=label))
    kb.adjust(2)
    return kb.as_markup(resize_keyboard=True, one_time_keyboard=False)

def kb_date_picker(today_text: str, choose_text: str, web_app_url: str | None) -> ReplyKeyboardMarkup:
    rows = [[KeyboardButton(text=today_text)]]
    if web_app_url:
        rows.append([KeyboardButton(text=choose_text, web_app=WebAppInfo(url=web_app_url))])
    rows.append([KeyboardButton(text=BUTTON_BACK), KeyboardButton(text=BUTTON_MAIN_MENU)])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True)
