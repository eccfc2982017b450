from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from tripshare.config import get_settings
from tripshare.db.repo import Database, TripShareRepository, set_global_repository
from tripshare.handlers import basic_router, expenses_router, trips_router
from tripshare.logging import configure_logging, get_logger


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    bot = Bot(token=settings.bot_token, default=DefaultBotProperties(parse_mode=ParseMode.HTML))
    dp = Dispatcher()
    db = Database(settings.database_url)
    await db.connect()
    repo = TripShareRepository(db)

    dp.include_router(basic_router)
    dp.include_router(trips_router)
    dp.include_router(expenses_router)

    set_global_repository(repo)

    log = get_logger(__name__)
    log.info("bot.start", currency=settings.currency, strict_promptpay=settings.promptpay_strict_crc)
    try:
        await dp.start_polling(bot)
    finally:
        await db.close()
        await bot.session.close()
        log.info("bot.stop")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
