"""
Worker: очистка неактивных аккаунтов и повтор записи уведомлений
"""
import asyncio
import logging

from shared.database import AsyncSessionLocal, init_db, close_db
from shared.redis_client import notification_retry_queue, close_redis
from shared.repositories import SqlNotificationRepository
from shared.config import LOG_LEVEL, LOG_FORMAT, DATA_DIR
from worker.cleanup import InactiveAccountCleanup
from worker.notification_retry import NotificationRetrier

# Настройка логирования
logging.basicConfig(
    level=LOG_LEVEL,
    format=LOG_FORMAT,
    handlers=[
        logging.FileHandler(DATA_DIR / "logs" / "worker.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


class Worker:
    """Фоновые задачи платформы"""

    def __init__(self):
        self.cleanup_service = InactiveAccountCleanup(AsyncSessionLocal)
        self.notification_retrier = NotificationRetrier(
            SqlNotificationRepository(AsyncSessionLocal),
            queue=notification_retry_queue
        )

    async def start(self):
        """Запуск worker"""
        logger.info("🚀 Worker started")

        # Инициализация БД
        await init_db()
        logger.info("✅ Database initialized")

        try:
            await asyncio.gather(
                self.cleanup_service.start(),
                self.notification_retrier.start()
            )
        finally:
            await self.cleanup()

    async def cleanup(self):
        """Очистка ресурсов"""
        logger.info("🧹 Cleaning up...")

        self.stop()

        await close_redis()
        await close_db()
        logger.info("✅ Worker stopped")

    def stop(self):
        """Остановка worker"""
        self.cleanup_service.stop()
        self.notification_retrier.stop()


async def run():
    worker = Worker()

    try:
        await worker.start()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutting down worker...")
        worker.stop()


def main():
    """Точка входа console_scripts"""
    asyncio.run(run())


if __name__ == "__main__":
    main()
