"""
Сервис уведомлений: best-effort запись с постановкой в очередь повтора
"""
import logging
from typing import Optional

from shared.redis_client import RedisQueue
from shared.repositories import NotificationRepository
from shared.schemas import NotificationCreate

logger = logging.getLogger(__name__)


class NotificationService:
    """Записывает уведомления; ошибки не пробрасываются вызывающему"""

    def __init__(
        self,
        repository: NotificationRepository,
        retry_queue: Optional[RedisQueue] = None
    ):
        self.repository = repository
        self.retry_queue = retry_queue

    async def emit(self, notification: NotificationCreate) -> bool:
        """
        Записать уведомление

        Returns:
            True если запись прошла, False если уведомление отложено/потеряно
        """
        try:
            await self.repository.add(notification)
            logger.info(
                f"Notification '{notification.type}' sent to {notification.recipient_id}"
            )
            return True

        except Exception as e:
            logger.error(
                f"Error writing notification for {notification.recipient_id}: {e}",
                exc_info=True
            )
            await self.schedule_retry(notification)
            return False

    async def schedule_retry(self, notification: NotificationCreate, attempt: int = 1):
        """
        Поставить уведомление в очередь повторной записи (если она настроена)
        """
        if self.retry_queue is None:
            return

        try:
            await self.retry_queue.enqueue({**notification.model_dump(), "attempt": attempt})
        except Exception as e:
            logger.error(f"Error scheduling notification retry for {notification.recipient_id}: {e}")
