import logging
from typing import Any, Awaitable, Callable, Dict, Iterable

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

logger = logging.getLogger(__name__)

DENIED_TEXT = "⛔ You are not allowed to use this bot."


class AllowedUsersMiddleware(BaseMiddleware):
    """Drops updates from users outside the allow-list; an empty list lets everyone in."""

    def __init__(self, allowed_usernames: Iterable[str]):
        self.allowed = {u.strip().lstrip("@").lower() for u in allowed_usernames if u.strip()}

    def is_allowed(self, username: str | None) -> bool:
        if not self.allowed:
            return True
        return bool(username) and username.lower() in self.allowed

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = data.get("event_from_user")
        username = user.username if user is not None else None
        if self.is_allowed(username):
            return await handler(event, data)

        logger.warning("Access denied for @%s (%s)", username or "-", user.id if user is not None else "?")
        if isinstance(event, Message):
            await event.answer(DENIED_TEXT)
        elif isinstance(event, CallbackQuery):
            await event.answer(DENIED_TEXT, show_alert=True)
        return None
