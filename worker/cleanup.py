"""
Cleanup сервис: удаление неактивных аккаунтов вместе с профилем вендора и товарами
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from shared.config import CLEANUP_INTERVAL, INACTIVE_ACCOUNT_DAYS
from shared.database import Account, AsyncSessionLocal, Product, Vendor

logger = logging.getLogger(__name__)


class InactiveAccountCleanup:
    """
    Сервис очистки неактивных аккаунтов
    """

    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        interval: int = CLEANUP_INTERVAL,
        inactive_days: int = INACTIVE_ACCOUNT_DAYS
    ):
        """
        Args:
            session_factory: Фабрика сессий БД
            interval: Интервал запуска cleanup в секундах
            inactive_days: Сколько дней без входа считается неактивностью
        """
        self.session_factory = session_factory
        self.interval = interval
        self.inactive_days = inactive_days
        self.running = False

    async def start(self):
        """Запуск cleanup сервиса"""
        self.running = True
        logger.info("🧹 Cleanup service started")

        while self.running:
            try:
                await self.delete_inactive_accounts()
                await asyncio.sleep(self.interval)

            except Exception as e:
                logger.error(f"Error in cleanup loop: {e}", exc_info=True)
                await asyncio.sleep(self.interval)

    def stop(self):
        """Остановка cleanup сервиса"""
        self.running = False
        logger.info("🧹 Cleanup service stopped")

    async def delete_inactive_accounts(self, now: Optional[datetime] = None) -> tuple[int, int]:
        """
        Удалить аккаунты без входа дольше inactive_days

        Каждый аккаунт удаляется в своём SAVEPOINT: ошибка откатывает
        только этот аккаунт. Все удаления уходят одним коммитом; если
        коммит упал, все попытки считаются ошибками.

        Returns:
            (deleted_count, error_count): deleted_count считает удалённых вендоров
        """
        logger.info("🧹 Starting job to delete inactive accounts...")

        threshold = (now or datetime.now()) - timedelta(days=self.inactive_days)
        deleted_count = 0
        error_count = 0

        async with self.session_factory() as session:
            result = await session.execute(
                select(Account.id)
                .where(Account.last_login < threshold)
                .order_by(Account.id)
            )
            inactive_ids = list(result.scalars().all())

            if not inactive_ids:
                logger.info("🧹 No inactive accounts found")
                return 0, 0

            for account_id in inactive_ids:
                try:
                    async with session.begin_nested():
                        vendor_result = await session.execute(
                            select(Vendor).where(Vendor.account_id == account_id).limit(1)
                        )
                        vendor = vendor_result.scalar_one_or_none()

                        if vendor:
                            products = await session.execute(
                                delete(Product).where(Product.vendor_id == vendor.id)
                            )
                            logger.info(
                                f"Deleting inactive vendor {vendor.id} ({vendor.name}) "
                                f"with {products.rowcount} products"
                            )
                            await session.execute(delete(Vendor).where(Vendor.id == vendor.id))
                        else:
                            logger.info(f"Account {account_id} is inactive but has no vendor profile")

                        await session.execute(delete(Account).where(Account.id == account_id))

                    # Считаем только после успешного RELEASE SAVEPOINT
                    if vendor:
                        deleted_count += 1

                except Exception as e:
                    logger.error(f"Failed to process account {account_id}: {e}")
                    error_count += 1

            try:
                await session.commit()
                logger.info(f"🧹 Deleted {deleted_count} vendor accounts and their products")
            except Exception as e:
                await session.rollback()
                logger.error(f"Error committing inactive account deletion: {e}", exc_info=True)
                error_count += deleted_count
                deleted_count = 0

        logger.info(f"🧹 Cleanup finished. Deleted: {deleted_count}, Errors: {error_count}")
        return deleted_count, error_count


async def run_cleanup():
    """
    Запуск cleanup сервиса как отдельной задачи
    """
    cleanup = InactiveAccountCleanup()
    await cleanup.start()
