"""
Повтор транзакций при конфликтах оптимистичной блокировки
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from shared.config import TRANSACTION_MAX_RETRIES, TRANSACTION_RETRY_DELAY
from shared.repositories import ConcurrentModificationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransactionConflict(Exception):
    """Транзакция не прошла после всех попыток"""

    def __init__(self, attempts: int, last_error: Optional[Exception] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Transaction failed after {attempts} attempts: {last_error}")


class TransactionRetrier:
    """
    Выполняет тело транзакции заново при ConcurrentModificationError.
    Любые другие ошибки пробрасываются сразу, без повторов.
    """

    def __init__(
        self,
        max_retries: int = TRANSACTION_MAX_RETRIES,
        retry_delay: float = TRANSACTION_RETRY_DELAY
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Args:
            func: Async функция, открывающая и коммитящая транзакцию целиком

        Raises:
            TransactionConflict: все попытки завершились конфликтом
        """
        last_error = None

        for attempt in range(self.max_retries):
            try:
                return await func()

            except ConcurrentModificationError as e:
                last_error = e
                logger.warning(
                    f"Transaction conflict on attempt {attempt + 1}/{self.max_retries}: {e}"
                )

                if attempt < self.max_retries - 1 and self.retry_delay:
                    # Exponential backoff
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))

        logger.error(f"All {self.max_retries} transaction attempts failed")
        raise TransactionConflict(self.max_retries, last_error)
