import asyncio
import logging
from functools import partial

from aiogram import Bot, Dispatcher

from expense_tracker.config import Settings, settings
from expense_tracker.db import create_engine, create_session_factory, init_db
from expense_tracker.flows.base import FlowContext
from expense_tracker.flows.registry import build_flows
from expense_tracker.flows.router import FlowRouter
from expense_tracker.repo.store import ExpenseStore
from expense_tracker.routers.access import AllowedUsersMiddleware
from expense_tracker.routers.chat import r as chat_router
from expense_tracker.scheduler.scheduler import schedule_report_dispatch
from expense_tracker.states.session import SessionStore
from expense_tracker.transport import BotTransport
from expense_tracker.utils.alerts import setup_logging
from expense_tracker.utils.reports import build_weekly_report

logger = logging.getLogger(__name__)


def build_dispatcher(bot: Bot, store: ExpenseStore, cfg: Settings) -> tuple[Dispatcher, FlowRouter]:
    """Wires transport, sessions, flows and aiogram routers together."""
    transport = BotTransport(bot)
    sessions = SessionStore()
    ctx = FlowContext(transport=transport, store=store, settings=cfg)
    registry = build_flows(ctx, cfg.enabled_flows)
    flow_router = FlowRouter(registry, sessions, transport)

    dp = Dispatcher()
    dp["flow_router"] = flow_router

    access = AllowedUsersMiddleware(cfg.allowed_usernames)
    dp.message.outer_middleware(access)
    dp.callback_query.outer_middleware(access)
    if access.allowed:
        logger.info("Access restricted to %d usernames", len(access.allowed))

    dp.include_router(router=chat_router)
    return dp, flow_router


async def main() -> None:
    """Entry point of the expense tracker bot.

    Runs, in order:
      1. Logging setup (console plus Telegram alerts).
      2. Database initialization (`init_db`).
      3. Flow registry and router wiring (`build_dispatcher`).
      4. The weekly expense report job.
      5. The polling loop; updates are handled concurrently, one at a time per chat.
    """
    alerts = setup_logging(settings.LOG_LEVEL)

    engine = create_engine(settings.DB_URL)
    await init_db(engine, settings.DB_URL)
    store = ExpenseStore(create_session_factory(engine), settings.CASE_INSENSITIVE_NAMES)

    bot = Bot(token=settings.TELEGRAM_BOT_TOKEN)
    dp, flow_router = build_dispatcher(bot, store, settings)

    if settings.REPORT_CRON.strip():
        schedule_report_dispatch(
            transport=flow_router.transport,
            sessions=flow_router.sessions,
            report_fn=partial(build_weekly_report, store, settings.CURRENCY_SYMBOL),
            cron=settings.REPORT_CRON,
            report_name="📊 Weekly expense report",
        )
    else:
        logger.info("Weekly report disabled (REPORT_CRON is empty)")

    logger.info("Bot started")
    try:
        await dp.start_polling(bot, handle_as_tasks=True)
    finally:
        await alerts.close_bot()
        await engine.dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
