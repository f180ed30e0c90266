from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Type, TypeVar

from expense_tracker.states.flow_data import FlowData

MAIN_MENU_STEP = "main_menu"

F = TypeVar("F", bound=FlowData)


@dataclass
class ChatSession:
    """Per-chat conversation record (lives in memory for the process lifetime).

    `flow_data` is None while the user sits at the main menu. The message ids
    are bookkeeping for edit-in-place and for cleaning up on exit.
    """
    flow_data: Optional[FlowData] = None
    last_bot_message_id: Optional[int] = None
    main_menu_message_id: Optional[int] = None
    tracked_message_ids: List[int] = field(default_factory=list)
    # a flow replaced the main menu reply keyboard with its own
    custom_reply_keyboard: bool = False

    @property
    def current_step(self) -> str:
        if self.flow_data is None:
            return MAIN_MENU_STEP
        return self.flow_data.step.value

    def get_flow_data(self, kind: Type[F]) -> Optional[F]:
        data = self.flow_data
        return data if isinstance(data, kind) else None

    def set_flow_data(self, data: FlowData) -> None:
        self.flow_data = data

    def reset(self) -> None:
        """Back to main menu state; message bookkeeping is kept."""
        self.flow_data = None

    def track_message(self, message_id: int) -> None:
        if message_id == self.main_menu_message_id:
            return
        if message_id not in self.tracked_message_ids:
            self.tracked_message_ids.append(message_id)

    def clear_tracked_messages(self) -> None:
        self.tracked_message_ids.clear()

    def reset_to_main_menu(self) -> None:
        self.last_bot_message_id = self.main_menu_message_id

    def set_main_menu_message(self, message_id: int) -> None:
        self.main_menu_message_id = message_id
        self.last_bot_message_id = message_id
        self.custom_reply_keyboard = False
        if message_id in self.tracked_message_ids:
            self.tracked_message_ids.remove(message_id)


class SessionStore:
    """Registry of chat sessions with one lock per chat.

    Events of the same chat run one at a time in arrival order (asyncio.Lock
    wakes waiters FIFO); different chats never wait on each other.
    """

    def __init__(self) -> None:
        self._sessions: Dict[int, ChatSession] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def get(self, chat_id: int) -> ChatSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = self._sessions[chat_id] = ChatSession()
        return session

    def chat_ids(self) -> List[int]:
        return list(self._sessions)

    def _lock(self, chat_id: int) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def acquire(self, chat_id: int) -> AsyncIterator[ChatSession]:
        async with self._lock(chat_id):
            yield self.get(chat_id)

    def __len__(self) -> int:
        return len(self._sessions)
