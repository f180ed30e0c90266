"""Inbound events, already stripped of Telegram specifics by the aiogram routers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

CALLBACK_SEPARATOR = ":"
CALLBACK_MAIN_MENU = "main_menu"
CALLBACK_BACK = "back"

BUTTON_MAIN_MENU = "🏠 Main menu"
BUTTON_BACK = "◀️ Back"


@dataclass(frozen=True)
class ChatRef:
    id: int
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.username or str(self.id)


@dataclass(frozen=True)
class TextInput:
    chat: ChatRef
    text: str
    message_id: Optional[int] = None


@dataclass(frozen=True)
class Callback:
    chat: ChatRef
    raw: str
    callback_id: str
    message_id: Optional[int] = None

    def split(self) -> tuple[str, str]:
        """`name:data` split on the first separator only; data may contain ':' itself."""
        name, _, data = self.raw.partition(CALLBACK_SEPARATOR)
        return name, data


@dataclass(frozen=True)
class Document:
    chat: ChatRef
    filename: Optional[str]
    size_bytes: Optional[int]
    file_id: str


@dataclass(frozen=True)
class WebAppData:
    chat: ChatRef
    payload: str


@dataclass(frozen=True)
class BackAction:
    chat: ChatRef
    callback_id: Optional[str] = None


@dataclass(frozen=True)
class MainMenuAction:
    chat: ChatRef
    callback_id: Optional[str] = None
    force_new: bool = False


Event = Union[TextInput, Callback, Document, WebAppData, BackAction, MainMenuAction]


def callback_data(name: str, data: object = "") -> str:
    if CALLBACK_SEPARATOR in name:
        raise ValueError(f"callback name {name!r} must not contain {CALLBACK_SEPARATOR!r}")
    return f"{name}{CALLBACK_SEPARATOR}{data}"
