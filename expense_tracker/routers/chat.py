"""
aiogram handlers: turn Telegram updates into flow events and hand them to the FlowRouter.

The FlowRouter instance arrives as the `flow_router` workflow-data entry of the dispatcher.
"""
import logging

from aiogram import F, Router
from aiogram.filters import CommandStart
from aiogram.types import CallbackQuery, ErrorEvent, Message

from expense_tracker.flows.events import ChatRef, Callback, Document, MainMenuAction, TextInput, WebAppData
from expense_tracker.flows.router import FlowRouter

logger = logging.getLogger(__name__)

r = Router()


def chat_ref(message: Message) -> ChatRef:
    user = message.from_user
    username = user.username if user is not None else message.chat.username
    return ChatRef(id=message.chat.id, username=username)


# ================== Handlers ==================
@r.message(CommandStart())
async def on_start(m: Message, flow_router: FlowRouter):
    await flow_router.dispatch(MainMenuAction(chat=chat_ref(m), force_new=True))


@r.message(F.web_app_data)
async def on_web_app_data(m: Message, flow_router: FlowRouter):
    await flow_router.dispatch(WebAppData(chat=chat_ref(m), payload=m.web_app_data.data))


@r.message(F.document)
async def on_document(m: Message, flow_router: FlowRouter):
    doc = m.document
    await flow_router.dispatch(Document(
        chat=chat_ref(m), filename=doc.file_name, size_bytes=doc.file_size, file_id=doc.file_id,
    ))


@r.message(F.text)
async def on_text(m: Message, flow_router: FlowRouter):
    await flow_router.dispatch(TextInput(chat=chat_ref(m), text=m.text, message_id=m.message_id))


@r.callback_query(F.data)
async def on_callback(cb: CallbackQuery, flow_router: FlowRouter):
    if cb.message is None:
        # inline-mode message: no chat to route to
        await cb.answer()
        return
    chat = ChatRef(id=cb.message.chat.id, username=cb.from_user.username)
    await flow_router.dispatch(Callback(
        chat=chat, raw=cb.data, callback_id=cb.id, message_id=cb.message.message_id,
    ))


@r.error()
async def on_error(event: ErrorEvent):
    logger.error("Update %s failed: %s", event.update.update_id, event.exception, exc_info=event.exception)
    return True
