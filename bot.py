"""
Operating-room scheduling bot entrypoint
"""
import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from config import settings
from database.database import init_db
from database.persistence import SqlitePersistence
from handlers import admin_handlers
from notifications.audit import SqliteAuditLog
from notifications.notifier import BotNotifier
from scheduling.service import SchedulingService
from utils.scheduler import start_scheduler

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Start the bot"""
    if not settings.BOT_TOKEN:
        raise ValueError("BOT_TOKEN is not set")

    logger.info("Starting bot...")

    init_db()
    logger.info("Database initialised")

    bot = Bot(token=settings.BOT_TOKEN)
    service = SchedulingService(
        persistence=SqlitePersistence(),
        notifier=BotNotifier(bot),
        audit=SqliteAuditLog()
    )
    await service.load()

    dp = Dispatcher(storage=MemoryStorage(), service=service)
    dp.include_router(admin_handlers.router)

    scheduler = await start_scheduler(service)

    try:
        logger.info("Bot started")
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        scheduler.shutdown()
        await bot.session.close()
        logger.info("Bot stopped")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
