import asyncio
import io
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")

import pytest

from expense_tracker.config import Settings
from expense_tracker.db import create_engine, create_session_factory, init_db
from expense_tracker.errors import TransportError
from expense_tracker.flows.base import FlowContext
from expense_tracker.flows.events import (
    BackAction, Callback, ChatRef, Document, MainMenuAction, TextInput, WebAppData, callback_data,
)
from expense_tracker.flows.registry import build_flows
from expense_tracker.flows.router import FlowRouter
from expense_tracker.repo.store import ExpenseStore
from expense_tracker.states.session import SessionStore

MEMORY_DB = "sqlite+aiosqlite:///:memory:"


@dataclass
class Screen:
    kind: str  # "send" or "edit"
    chat_id: int
    message_id: int
    text: str
    reply_markup: Any = None


class FakeTransport:
    """Records every outbound call; message ids are handed out sequentially."""

    def __init__(self):
        self.screens: List[Screen] = []
        self.deleted: List[int] = []
        self.answered: List[tuple] = []
        self.files: Dict[str, bytes] = {}
        self.fail_edit = False
        self.fail_delete = False
        self._next_id = 100

    async def send_message(self, chat_id, text, reply_markup=None):
        self._next_id += 1
        self.screens.append(Screen("send", chat_id, self._next_id, text, reply_markup))
        return self._next_id

    async def edit_message(self, chat_id, message_id, text, reply_markup=None):
        if self.fail_edit:
            raise TransportError("message can't be edited")
        self.screens.append(Screen("edit", chat_id, message_id, text, reply_markup))
        return message_id

    async def delete_message(self, chat_id, message_id):
        if self.fail_delete:
            raise TransportError("message to delete not found")
        self.deleted.append(message_id)

    async def answer_callback(self, callback_id, text=None):
        self.answered.append((callback_id, text))

    async def download_file(self, file_id):
        return io.BytesIO(self.files[file_id])

    @property
    def sent(self) -> List[Screen]:
        return [s for s in self.screens if s.kind == "send"]

    @property
    def last(self) -> Screen:
        return self.screens[-1]

    def buttons(self, screen: Optional[Screen] = None) -> List[List[str]]:
        """Button texts of an inline or reply keyboard, row by row."""
        markup = (screen or self.last).reply_markup
        rows = getattr(markup, "inline_keyboard", None) or getattr(markup, "keyboard", None) or []
        return [[b.text for b in row] for row in rows]


class BotHarness:
    """Drives the FlowRouter for one chat the way the aiogram glue does."""

    def __init__(self, store: ExpenseStore, settings: Settings, enabled=()):
        self.store = store
        self.settings = settings
        self.transport = FakeTransport()
        self.ctx = FlowContext(transport=self.transport, store=store, settings=settings)
        self.registry = build_flows(self.ctx, list(enabled))
        self.sessions = SessionStore()
        self.router = FlowRouter(self.registry, self.sessions, self.transport)
        self.chat = ChatRef(id=1, username="alice")

    @property
    def session(self):
        return self.sessions.get(self.chat.id)

    @property
    def flow(self):
        return self.session.flow_data

    async def text(self, text: str):
        await self.router.dispatch(TextInput(chat=self.chat, text=text))

    async def click(self, name: str, data: object = ""):
        raw = callback_data(name, data)
        await self.router.dispatch(Callback(chat=self.chat, raw=raw, callback_id=f"cb-{raw}"))

    async def click_raw(self, raw: str):
        await self.router.dispatch(Callback(chat=self.chat, raw=raw, callback_id=f"cb-{raw}"))

    async def back(self):
        await self.router.dispatch(BackAction(chat=self.chat))

    async def main_menu(self, force_new: bool = False):
        await self.router.dispatch(MainMenuAction(chat=self.chat, force_new=force_new))

    async def document(self, filename: str, size_bytes: int, file_id: str = "file-1"):
        await self.router.dispatch(Document(chat=self.chat, filename=filename, size_bytes=size_bytes, file_id=file_id))

    async def web_app(self, payload: str):
        await self.router.dispatch(WebAppData(chat=self.chat, payload=payload))

    async def seed(self) -> Dict[str, int]:
        """Food › Groceries (no tags) and Food › Restaurants (tags Dinner, Lunch); Home › Rent."""
        food = (await self.store.create_category("Food")).item
        home = (await self.store.create_category("Home")).item
        groceries = (await self.store.create_sub_category("Groceries", food.id)).item
        restaurants = (await self.store.create_sub_category("Restaurants", food.id)).item
        rent = (await self.store.create_sub_category("Rent", home.id)).item
        lunch = (await self.store.create_tag("Lunch", restaurants.id)).item
        dinner = (await self.store.create_tag("Dinner", restaurants.id)).item
        return {
            "food": food.id, "home": home.id, "groceries": groceries.id, "restaurants": restaurants.id,
            "rent": rent.id, "lunch": lunch.id, "dinner": dinner.id,
        }


@pytest.fixture
def settings():
    return Settings(
        TELEGRAM_BOT_TOKEN="123456:TEST-TOKEN",
        DB_URL=MEMORY_DB,
        ENABLED_FLOWS="",
        ALLOWED_USERNAMES="",
        DATE_PICKER_URL="https://example.com/date-picker",
    )


@pytest.fixture
def run_store(settings):
    """Runs `scenario(store)` against a fresh in-memory database inside one event loop."""
    def _run(scenario, case_insensitive: bool = True):
        async def main():
            engine = create_engine(MEMORY_DB)
            await init_db(engine)
            try:
                return await scenario(ExpenseStore(create_session_factory(engine), case_insensitive))
            finally:
                await engine.dispose()
        return asyncio.run(main())
    return _run


@pytest.fixture
def run_bot(run_store, settings):
    """Runs `scenario(bot)` with a BotHarness over a fresh database."""
    def _run(scenario, enabled=(), bot_settings: Optional[Settings] = None):
        async def with_store(store):
            return await scenario(BotHarness(store, bot_settings or settings, enabled))
        return run_store(with_store)
    return _run
