import logging
from typing import Awaitable, Callable

import aiocron

from expense_tracker.errors import TransportError
from expense_tracker.states.session import SessionStore
from expense_tracker.transport import Transport

logger = logging.getLogger(__name__)


async def dispatch_report(
    *,
    transport: Transport,
    sessions: SessionStore,
    report_fn: Callable[[], Awaitable[str]],
    report_name: str = "Unnamed report",
) -> int:
    """
    Sends one report to every chat known to this process.

    :return: Number of chats the report reached.
    """
    chat_ids = sessions.chat_ids()
    if not chat_ids:
        logger.info("%s: no chats to send to", report_name)
        return 0

    text = await report_fn()
    sent = 0
    for chat_id in chat_ids:
        try:
            await transport.send_message(chat_id, text)
            sent += 1
        except TransportError as e:
            logger.warning("Failed to send %s to chat %s: %s", report_name, chat_id, e)
    logger.info("%s sent to %d/%d chats", report_name, sent, len(chat_ids))
    return sent


def schedule_report_dispatch(
    *,
    transport: Transport,
    sessions: SessionStore,
    report_fn: Callable[[], Awaitable[str]],
    cron: str,
    report_name: str = "Unnamed report",
) -> aiocron.Cron:
    """
    Schedules a report for every known chat.

    :param transport: Outbound side of the bot
    :param sessions: Chats seen by this process
    :param report_fn: Builds the report text
    :param cron: Cron expression (e.g. '0 9 * * MON')
    :param report_name: Report name for the logs
    """
    @aiocron.crontab(cron)
    async def cron_task():
        try:
            await dispatch_report(
                transport=transport, sessions=sessions, report_fn=report_fn, report_name=report_name
            )
        except Exception:
            logger.exception("Report dispatch %r failed", report_name)

    logger.info("Scheduled %s with cron %r", report_name, cron)
    return cron_task
