"""
Повторная запись уведомлений, которые не удалось сохранить сразу
"""
import asyncio
import logging
from typing import Optional

from pydantic import ValidationError as PayloadError

from shared.config import NOTIFICATION_RETRY_LIMIT
from shared.redis_client import RedisQueue, notification_retry_queue
from shared.repositories import NotificationRepository
from shared.schemas import NotificationCreate

logger = logging.getLogger(__name__)


class NotificationRetrier:
    """
    Забирает уведомления из очереди и пробует записать их снова
    """

    def __init__(
        self,
        repository: NotificationRepository,
        queue: RedisQueue = notification_retry_queue,
        max_attempts: int = NOTIFICATION_RETRY_LIMIT,
        poll_timeout: int = 5
    ):
        self.repository = repository
        self.queue = queue
        self.max_attempts = max_attempts
        self.poll_timeout = poll_timeout
        self.running = False

    async def start(self):
        """Запуск цикла повторов"""
        self.running = True
        logger.info("📨 Notification retrier started")

        while self.running:
            try:
                await self.process_next()

            except Exception as e:
                logger.error(f"Error in notification retry loop: {e}", exc_info=True)
                await asyncio.sleep(1)

    def stop(self):
        """Остановка цикла"""
        self.running = False
        logger.info("📨 Notification retrier stopped")

    async def process_next(self) -> Optional[bool]:
        """
        Обработать одно уведомление из очереди

        Returns:
            None если очередь пуста, True если записано, False если не записано
        """
        item = await self.queue.dequeue(timeout=self.poll_timeout)
        if item is None:
            return None

        attempt = int(item.pop("attempt", 1))

        try:
            notification = NotificationCreate(**item)
        except PayloadError as e:
            logger.error(f"Dropping malformed notification payload {item}: {e}")
            return False

        try:
            await self.repository.add(notification)
            logger.info(
                f"Notification for {notification.recipient_id} written on retry {attempt}"
            )
            return True

        except Exception as e:
            if attempt >= self.max_attempts:
                logger.error(
                    f"Giving up on notification for {notification.recipient_id} "
                    f"after {attempt} attempts: {e}"
                )
                return False

            logger.warning(
                f"Retry {attempt} failed for notification to {notification.recipient_id}: {e}"
            )
            await self.queue.enqueue({**notification.model_dump(), "attempt": attempt + 1})
            return False
