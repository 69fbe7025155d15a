"""
Redis клиент для очереди повторной отправки уведомлений
"""
import logging
import json
from typing import Optional
import redis.asyncio as redis

from shared.config import REDIS_URL

logger = logging.getLogger(__name__)

# Глобальный Redis клиент
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """
    Получить Redis клиент
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.from_url(
            REDIS_URL,
            encoding="utf-8",
            decode_responses=True
        )
        logger.info("Redis client initialized")

    return _redis_client


async def close_redis():
    """
    Закрыть Redis соединение
    """
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis client closed")


class RedisQueue:
    """
    Простая очередь на основе Redis LIST
    """

    def __init__(self, queue_name: str, client: Optional[redis.Redis] = None):
        self.queue_name = queue_name
        self.redis_client = client

    async def _get_client(self):
        if not self.redis_client:
            self.redis_client = await get_redis()
        return self.redis_client

    async def enqueue(self, data: dict) -> None:
        """
        Добавить задачу в очередь
        """
        client = await self._get_client()
        await client.rpush(self.queue_name, json.dumps(data))
        logger.info(
            f"Enqueued to {self.queue_name}: recipient={data.get('recipient_id')}, "
            f"attempt={data.get('attempt', 0)}"
        )

    async def dequeue(self, timeout: int = 0) -> Optional[dict]:
        """
        Получить задачу из очереди (блокирующая операция)
        """
        client = await self._get_client()
        result = await client.blpop(self.queue_name, timeout=timeout)

        if result:
            _, raw = result
            return json.loads(raw)

        return None

    async def size(self) -> int:
        """
        Получить размер очереди
        """
        client = await self._get_client()
        return await client.llen(self.queue_name)


# Очереди
notification_retry_queue = RedisQueue("notification_retry")
