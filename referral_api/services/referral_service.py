"""
Сервис реферальной системы: регистрация по коду и статистика
"""
import logging
import hashlib
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import PAYOUT_MINIMUM, SITE_URL
from shared.database import Account, ReferralEntry, ReferralStatus
from shared.schemas import ReferralRecord, ReferralStats
from shared.validation import normalize_referral_code

logger = logging.getLogger(__name__)


class ReferralService:
    """Сервис для работы с реферальной системой"""

    @staticmethod
    def generate_referral_code(account_id: str) -> str:
        """
        Генерация уникального реферального кода
        """
        # Используем хеш от account_id для уникальности
        hash_object = hashlib.md5(account_id.encode())
        return hash_object.hexdigest()[:8].upper()

    @staticmethod
    def build_referral_link(referral_code: str) -> str:
        return f"{SITE_URL}/signup?ref={referral_code}"

    @staticmethod
    async def register_account(
        session: AsyncSession,
        account_id: str,
        full_name: str,
        email: Optional[str] = None,
        referrer_code: Optional[str] = None
    ) -> tuple[Account, bool]:
        """
        Создание аккаунта с обработкой реферального кода

        Returns:
            tuple[Account, bool]: (аккаунт, создан ли он сейчас)
        """
        try:
            # Проверяем, существует ли аккаунт
            existing = await session.get(Account, account_id)
            if existing:
                logger.info(f"Account {account_id} already exists")
                return existing, False

            # Ищем реферера по коду
            referrer = None
            code = normalize_referral_code(referrer_code)
            if code and code == ReferralService.generate_referral_code(account_id):
                logger.warning(f"Account {account_id} tried to use its own referral code")
                code = None

            if code:
                referrer = await ReferralService.get_account_by_referral_code(session, code)
                if referrer:
                    logger.info(f"Account {account_id} referred by {referrer.id}")
                else:
                    logger.warning(f"Referrer with code {code} not found, ignoring")

            account = Account(
                id=account_id,
                full_name=full_name,
                email=email,
                referral_code=ReferralService.generate_referral_code(account_id),
                referred_by_code=referrer.referral_code if referrer else None,
                has_completed_qualifying_action=False,
                balance=0
            )
            session.add(account)

            # Запись в pending у реферера
            if referrer:
                session.add(ReferralEntry(
                    referrer_id=referrer.id,
                    referred_account_id=account_id,
                    referred_full_name=full_name,
                    status=ReferralStatus.PENDING
                ))

            await session.commit()
            await session.refresh(account)

            logger.info(f"Created account {account_id} with referral code {account.referral_code}")
            return account, True

        except Exception as e:
            await session.rollback()
            logger.error(f"Error registering account {account_id}: {e}")
            raise

    @staticmethod
    async def touch_login(session: AsyncSession, account_id: str) -> bool:
        """
        Обновить время последнего входа

        Returns:
            False если аккаунт не найден
        """
        account = await session.get(Account, account_id)
        if not account:
            return False

        account.last_login = datetime.now()
        await session.commit()
        return True

    @staticmethod
    async def get_account_by_referral_code(
        session: AsyncSession,
        referral_code: str
    ) -> Optional[Account]:
        """
        Получение аккаунта по реферальному коду
        """
        result = await session.execute(
            select(Account)
            .where(Account.referral_code == referral_code)
            .order_by(Account.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_referral_stats(
        session: AsyncSession,
        account_id: str
    ) -> Optional[ReferralStats]:
        """
        Получение статистики по рефералам
        """
        account = await session.get(Account, account_id)
        if not account:
            return None

        result = await session.execute(
            select(ReferralEntry)
            .where(ReferralEntry.referrer_id == account_id)
            .order_by(ReferralEntry.created_at.desc(), ReferralEntry.id.desc())
        )
        entries = result.scalars().all()

        pending = [
            ReferralRecord.model_validate(entry)
            for entry in entries if entry.status == ReferralStatus.PENDING
        ]
        successful = [
            ReferralRecord.model_validate(entry)
            for entry in entries if entry.status == ReferralStatus.SUCCESSFUL
        ]

        balance = account.balance or 0

        return ReferralStats(
            account_id=account.id,
            referral_code=account.referral_code,
            referral_link=(
                ReferralService.build_referral_link(account.referral_code)
                if account.referral_code else None
            ),
            balance=balance,
            pending_referrals=pending,
            successful_referrals=successful,
            payout_minimum=PAYOUT_MINIMUM,
            progress_percentage=min(balance / PAYOUT_MINIMUM * 100, 100.0) if PAYOUT_MINIMUM else 100.0,
            can_request_payout=balance >= PAYOUT_MINIMUM
        )
