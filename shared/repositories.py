"""
Репозитории аккаунтов и уведомлений

Сервисы получают репозиторий через конструктор и не обращаются
к глобальным сессиям напрямую.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from shared.database import Account, Notification, ReferralEntry, ReferralStatus
from shared.schemas import AccountSnapshot, NotificationCreate, ReferralRecord

logger = logging.getLogger(__name__)

# SQLSTATE PostgreSQL, при которых транзакцию можно безопасно повторить
RETRYABLE_SQLSTATES = {"40001", "40P01"}  # serialization_failure, deadlock_detected


class ConcurrentModificationError(Exception):
    """Параллельная транзакция изменила те же записи, транзакция откатена"""
    pass


class AccountTransaction(ABC):
    """Операции над аккаунтами внутри одной атомарной транзакции"""

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[AccountSnapshot]:
        ...

    @abstractmethod
    async def find_by_referral_code(self, referral_code: str) -> list[AccountSnapshot]:
        """Все аккаунты с данным кодом, в детерминированном порядке (по id)"""
        ...

    @abstractmethod
    async def mark_qualified(self, account_id: str) -> None:
        ...

    @abstractmethod
    async def credit(self, account_id: str, amount: int) -> None:
        ...

    @abstractmethod
    async def promote_referral(self, referrer_id: str, record: ReferralRecord) -> bool:
        """
        Перенести запись из pending в successful у реферера

        Returns:
            True если запись была в pending, False если её пришлось создать
            (или она уже была в successful)
        """
        ...


class AccountRepository(ABC):
    """Хранилище аккаунтов с транзакциями и оптимистичной блокировкой"""

    @abstractmethod
    def transaction(self):
        """
        Async context manager, отдающий AccountTransaction.
        Коммит при выходе без ошибки, откат при исключении.

        Raises:
            ConcurrentModificationError: конфликт при коммите
        """
        ...


class NotificationRepository(ABC):
    """Append-only хранилище уведомлений"""

    @abstractmethod
    async def add(self, notification: NotificationCreate) -> str:
        ...


# ========== SQLAlchemy ==========

class SqlAccountTransaction(AccountTransaction):
    """Транзакция поверх AsyncSession"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._accounts: dict[str, Account] = {}

    async def _load(self, account_id: str) -> Optional[Account]:
        if account_id in self._accounts:
            return self._accounts[account_id]

        # SELECT FOR UPDATE: повторная доставка ждёт коммита первой
        result = await self.session.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
        )
        account = result.scalar_one_or_none()
        if account is not None:
            self._accounts[account_id] = account
        return account

    async def _require(self, account_id: str) -> Account:
        account = await self._load(account_id)
        if account is None:
            raise LookupError(f"Account {account_id} disappeared inside transaction")
        return account

    async def get_account(self, account_id: str) -> Optional[AccountSnapshot]:
        account = await self._load(account_id)
        if account is None:
            return None
        return AccountSnapshot.model_validate(account)

    async def find_by_referral_code(self, referral_code: str) -> list[AccountSnapshot]:
        result = await self.session.execute(
            select(Account)
            .where(Account.referral_code == referral_code)
            .order_by(Account.id)
            .with_for_update()
        )
        accounts = result.scalars().all()
        for account in accounts:
            self._accounts.setdefault(account.id, account)
        return [AccountSnapshot.model_validate(account) for account in accounts]

    async def mark_qualified(self, account_id: str) -> None:
        account = await self._require(account_id)
        if not account.has_completed_qualifying_action:
            account.has_completed_qualifying_action = True

    async def credit(self, account_id: str, amount: int) -> None:
        account = await self._require(account_id)
        account.balance = (account.balance or 0) + amount

    async def promote_referral(self, referrer_id: str, record: ReferralRecord) -> bool:
        result = await self.session.execute(
            select(ReferralEntry)
            .where(
                ReferralEntry.referrer_id == referrer_id,
                ReferralEntry.referred_account_id == record.referred_account_id
            )
            .with_for_update()
        )
        entry = result.scalar_one_or_none()

        if entry is None:
            self.session.add(ReferralEntry(
                referrer_id=referrer_id,
                referred_account_id=record.referred_account_id,
                referred_full_name=record.referred_full_name,
                status=ReferralStatus.SUCCESSFUL,
                converted_at=datetime.now()
            ))
            return False

        if entry.status == ReferralStatus.SUCCESSFUL:
            return False

        entry.status = ReferralStatus.SUCCESSFUL
        entry.converted_at = datetime.now()
        return True


def _is_retryable(error: DBAPIError) -> bool:
    if isinstance(error, IntegrityError):
        # Две транзакции одновременно создали одну и ту же запись реферала
        message = str(error.orig)
        return "uq_referral_referrer_referred" in message or "referral_entries" in message

    sqlstate = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
    return sqlstate in RETRYABLE_SQLSTATES


class SqlAccountRepository(AccountRepository):
    """Репозиторий аккаунтов на SQLAlchemy"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAccountTransaction]:
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield SqlAccountTransaction(session)
            except StaleDataError as e:
                logger.warning(f"Optimistic lock conflict: {e}")
                raise ConcurrentModificationError(str(e)) from e
            except DBAPIError as e:
                if _is_retryable(e):
                    logger.warning(f"Retryable database conflict: {e.orig}")
                    raise ConcurrentModificationError(str(e.orig)) from e
                raise


class SqlNotificationRepository(NotificationRepository):
    """Запись уведомлений в таблицу notifications"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def add(self, notification: NotificationCreate) -> str:
        async with self.session_factory() as session:
            try:
                record = Notification(**notification.model_dump())
                session.add(record)
                await session.commit()
                return record.id

            except Exception:
                await session.rollback()
                raise
