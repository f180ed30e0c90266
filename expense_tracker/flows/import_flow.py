"""
Settings › import budgets: fiscal year, then the spreadsheet upload.
"""
import logging
import os

from sqlalchemy.exc import SQLAlchemyError

from expense_tracker.errors import TransportError, ValidationError
from expense_tracker.flows.base import BackResult, FlowHandler, SubFlow
from expense_tracker.flows.events import ChatRef, Document, TextInput
from expense_tracker.flows.messaging import edit_or_send_flow_message, send_flow_message
from expense_tracker.keyboards.common import kb_navigation
from expense_tracker.services.import_service import ImportResult
from expense_tracker.states.flow_data import ImportData
from expense_tracker.states.session import ChatSession
from expense_tracker.utils.formatting import b, parse_year, q

logger = logging.getLogger(__name__)

Step = ImportData.Step

MAX_WARNINGS_SHOWN = 10
MAX_ERRORS_SHOWN = 5


def _size_label(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):g} MB"


def format_import_result(year: int, result: ImportResult) -> str:
    created = (
        result.categories_created + result.sub_categories_created + result.tags_created + result.budgets_created
    )
    if result.errors and not created:
        header = f"❌ {b(f'Import for {year} failed')}"
    else:
        header = f"✅ {b(f'Import for {year} completed')}"

    lines = [
        header,
        "",
        f"📁 Categories created: {result.categories_created}",
        f"📂 Subcategories created: {result.sub_categories_created}",
        f"🏷️ Tags created: {result.tags_created}",
        f"💰 Budgets created: {result.budgets_created}",
    ]
    for title, items, limit in (
        ("⚠️ Warnings", result.warnings, MAX_WARNINGS_SHOWN),
        ("❌ Errors", result.errors, MAX_ERRORS_SHOWN),
    ):
        if not items:
            continue
        lines.append("")
        lines.append(f"{title} ({len(items)}):")
        lines.extend(f"• {q(item)}" for item in items[:limit])
        if len(items) > limit:
            lines.append(f"… and {len(items) - limit} more")
    return "\n".join(lines)


class ImportFlow(FlowHandler, SubFlow):
    name = "import"
    data_type = ImportData
    settings_label = "📥 Import budgets"
    settings_callback = ("settings_sub", "import")
    error_text = "❌ The import failed. Please try again."

    async def start_from_menu(self, chat: ChatRef, session: ChatSession) -> None:
        await self.start_from_settings_root(chat, session)

    async def start_from_settings_root(self, chat: ChatRef, session: ChatSession) -> None:
        logger.info("Starting import flow for chat %s", chat.id)
        await self._go(chat, session, ImportData())

    async def resume(self, chat: ChatRef, session: ChatSession) -> None:
        await self._render(chat, session, session.get_flow_data(ImportData))

    async def _go(self, chat: ChatRef, session: ChatSession, flow: ImportData) -> None:
        await self._render(chat, session, flow)
        session.set_flow_data(flow)

    async def _render(self, chat: ChatRef, session: ChatSession, flow: ImportData) -> None:
        s = self.settings
        if flow.step == Step.WAITING_FOR_YEAR:
            text = (
                f"📥 {b('Import budgets')}\n\n"
                f"Enter the fiscal year ({s.IMPORT_MIN_YEAR}–{s.IMPORT_MAX_YEAR}):"
            )
        else:
            text = (
                f"📥 {b(f'Import budgets {flow.year}')}\n\n"
                f"Send the spreadsheet ({', '.join(s.import_allowed_extensions)}, "
                f"max {_size_label(s.IMPORT_MAX_FILE_SIZE_BYTES)})."
            )
        await edit_or_send_flow_message(self.transport, chat.id, session, text, kb_navigation())

    # ---------- year ----------
    def can_handle_text_input(self, session: ChatSession) -> bool:
        return self.step_of(session) == Step.WAITING_FOR_YEAR

    async def handle_text_input(self, event: TextInput, session: ChatSession) -> None:
        flow = session.get_flow_data(ImportData)
        try:
            year = parse_year(event.text, self.settings.IMPORT_MIN_YEAR, self.settings.IMPORT_MAX_YEAR)
        except ValidationError as e:
            await send_flow_message(self.transport, event.chat.id, session, f"❌ {e}")
            return
        await self._go(event.chat, session, flow.evolve(step=Step.WAITING_FOR_FILE, year=year))

    # ---------- file ----------
    def can_handle_document(self, session: ChatSession) -> bool:
        return self.step_of(session) == Step.WAITING_FOR_FILE

    def _validate_document(self, event: Document) -> None:
        s = self.settings
        _, ext = os.path.splitext(event.filename or "")
        if ext.lower() not in s.import_allowed_extensions:
            raise ValidationError(
                f"Unsupported file type. Allowed: {', '.join(s.import_allowed_extensions)}"
            )
        if event.size_bytes is not None and event.size_bytes > s.IMPORT_MAX_FILE_SIZE_BYTES:
            raise ValidationError(
                f"File too large ({_size_label(event.size_bytes)}). "
                f"Maximum size is {_size_label(s.IMPORT_MAX_FILE_SIZE_BYTES)}."
            )

    async def handle_document(self, event: Document, session: ChatSession) -> None:
        chat = event.chat
        flow = session.get_flow_data(ImportData)
        try:
            self._validate_document(event)
        except ValidationError as e:
            logger.warning("Rejected upload %r (%s bytes) in chat %s: %s",
                           event.filename, event.size_bytes, chat.id, e)
            await send_flow_message(self.transport, chat.id, session, f"❌ {e}")
            return

        await send_flow_message(self.transport, chat.id, session, "⏳ Importing…")
        try:
            stream = await self.transport.download_file(event.file_id)
            result = await self.store.import_budgets(stream, flow.year)
        except (TransportError, SQLAlchemyError):
            logger.exception("Import of %r for %s failed in chat %s", event.filename, flow.year, chat.id)
            await edit_or_send_flow_message(self.transport, chat.id, session, self.error_text)
        else:
            logger.info(
                "Import %s: %d categories, %d subcategories, %d tags, %d budgets, %d warnings, %d errors",
                flow.year, result.categories_created, result.sub_categories_created, result.tags_created,
                result.budgets_created, len(result.warnings), len(result.errors),
            )
            await edit_or_send_flow_message(
                self.transport, chat.id, session, format_import_result(flow.year, result)
            )
        await self.return_to_settings_root(chat, session, new_message=True)

    # ---------- back ----------
    def can_handle_back(self, session: ChatSession) -> bool:
        return self.owns(session)

    async def handle_back(self, chat: ChatRef, session: ChatSession) -> BackResult:
        flow = session.get_flow_data(ImportData)
        if flow.step == Step.WAITING_FOR_FILE:
            await self._go(chat, session, flow.evolve(step=Step.WAITING_FOR_YEAR, year=None))
            return BackResult.HANDLED
        return self.back_to_settings_root(session)
