"""
Сервис выплат реферального баланса
Запрос выплаты списывает баланс целиком, отказ возвращает сумму обратно
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from shared.admin_notifier import notify_admin
from shared.config import PAYOUT_MINIMUM, PAYOUTS_SENDER_NAME
from shared.database import Account, PayoutRequest
from shared.schemas import (
    BankDetails,
    NotificationCreate,
    NotificationType,
    PayoutDecision,
)
from shared.validation import ValidationError, validate_bank_details
from referral_api.services.notification_service import NotificationService
from referral_api.services.referral_ledger import format_naira

logger = logging.getLogger(__name__)

ADMIN_SENDER_ID = "admin"


class PayoutError(Exception):
    """Базовая ошибка выплат"""
    pass


class AccountNotFoundError(PayoutError):
    pass


class InsufficientBalanceError(PayoutError):
    """Баланс меньше минимальной суммы выплаты"""
    pass


class BankDetailsMissingError(PayoutError):
    pass


class PayoutNotFoundError(PayoutError):
    pass


class InvalidPayoutStateError(PayoutError):
    pass


class PayoutConflictError(PayoutError):
    """Аккаунт изменён параллельной транзакцией"""
    pass


class PayoutService:
    """Сервис управления выплатами"""

    @staticmethod
    async def _lock_account(session: AsyncSession, account_id: str) -> Account:
        result = await session.execute(
            select(Account)
            .where(Account.id == account_id)
            .with_for_update()
        )
        account = result.scalar_one_or_none()
        if not account:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    @staticmethod
    async def update_bank_details(
        session: AsyncSession,
        account_id: str,
        details: BankDetails
    ) -> Account:
        """
        Сохранить банковские реквизиты
        """
        valid, error = validate_bank_details(
            details.bank_name, details.account_number, details.account_name
        )
        if not valid:
            raise ValidationError(error)

        try:
            account = await PayoutService._lock_account(session, account_id)
            account.bank_name = details.bank_name.strip()
            account.account_number = details.account_number.strip()
            account.account_name = details.account_name.strip()
            await session.commit()

            logger.info(f"Updated bank details for account {account_id}")
            return account

        except StaleDataError as e:
            await session.rollback()
            raise PayoutConflictError(str(e)) from e
        except Exception:
            await session.rollback()
            raise

    @staticmethod
    async def request_payout(
        session: AsyncSession,
        account_id: str,
        notification_service: Optional[NotificationService] = None
    ) -> PayoutRequest:
        """
        АТОМАРНО обнулить баланс и создать запрос на выплату

        Raises:
            InsufficientBalanceError: баланс меньше PAYOUT_MINIMUM
            BankDetailsMissingError: реквизиты не заполнены
        """
        try:
            account = await PayoutService._lock_account(session, account_id)
            amount = account.balance or 0

            if amount < PAYOUT_MINIMUM:
                raise InsufficientBalanceError(
                    f"Minimum payout is {format_naira(PAYOUT_MINIMUM)}, balance is {format_naira(amount)}"
                )

            if not (account.bank_name and account.account_number and account.account_name):
                raise BankDetailsMissingError("Please add your bank account details first")

            payout = PayoutRequest(
                account_id=account.id,
                user_email=account.email,
                user_name=account.full_name,
                amount=amount,
                bank_name=account.bank_name,
                account_number=account.account_number,
                account_name=account.account_name,
                status="pending"
            )
            session.add(payout)
            account.balance = 0

            await session.commit()
            await session.refresh(payout)

        except StaleDataError as e:
            await session.rollback()
            raise PayoutConflictError(str(e)) from e
        except Exception:
            await session.rollback()
            raise

        logger.info(f"Payout request {payout.id} created for {account_id}: {amount}")

        if notification_service:
            await notify_admin(
                f"{payout.user_name} has requested a payout of {format_naira(amount)}.",
                sender_id=account_id,
                sender_name=payout.user_name,
                notification_type=NotificationType.PAYOUT_REQUEST.value,
                amount=amount,
                send_func=notification_service.emit
            )

        return payout

    @staticmethod
    async def decide_payout(
        session: AsyncSession,
        request_id: str,
        decision: PayoutDecision,
        reason: Optional[str] = None,
        notification_service: Optional[NotificationService] = None
    ) -> PayoutRequest:
        """
        Отметить выплату как проведённую или отклонить её с возвратом суммы
        """
        if decision == PayoutDecision.REJECTED and not (reason and reason.strip()):
            raise ValidationError("Rejection reason is required")

        try:
            result = await session.execute(
                select(PayoutRequest)
                .where(PayoutRequest.id == request_id)
                .with_for_update()
            )
            payout = result.scalar_one_or_none()

            if not payout:
                raise PayoutNotFoundError(f"Payout request {request_id} not found")

            if payout.status != "pending":
                raise InvalidPayoutStateError(
                    f"Payout request {request_id} is already {payout.status}"
                )

            if decision == PayoutDecision.PAID:
                payout.status = "paid"
                payout.paid_at = datetime.now()
                text = f"Your payout request of {format_naira(payout.amount)} has been approved and paid."
            else:
                # Возврат суммы на баланс в той же транзакции
                account = await PayoutService._lock_account(session, payout.account_id)
                account.balance = (account.balance or 0) + payout.amount
                payout.status = "rejected"
                payout.rejection_reason = reason.strip()
                text = (
                    f"Your payout request was rejected. Reason: {payout.rejection_reason} "
                    f"The amount has been returned to your balance."
                )

            await session.commit()

        except StaleDataError as e:
            await session.rollback()
            raise PayoutConflictError(str(e)) from e
        except Exception:
            await session.rollback()
            raise

        logger.info(f"Payout request {request_id} marked {payout.status}")

        if notification_service:
            await notification_service.emit(NotificationCreate(
                recipient_id=payout.account_id,
                sender_id=ADMIN_SENDER_ID,
                sender_name=PAYOUTS_SENDER_NAME,
                type=NotificationType.PAYOUT_STATUS.value,
                text=text
            ))

        return payout

    @staticmethod
    async def list_payout_requests(
        session: AsyncSession,
        status: Optional[str] = None
    ) -> list[PayoutRequest]:
        """
        Запросы на выплату, новые первыми
        """
        query = select(PayoutRequest).order_by(PayoutRequest.requested_at.desc())
        if status:
            query = query.where(PayoutRequest.status == status)

        result = await session.execute(query)
        return list(result.scalars().all())
