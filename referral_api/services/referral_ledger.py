"""
Реферальный леджер: бонус обеим сторонам за первую оплаченную подписку

Вся проверка и все записи выполняются в одной транзакции хранилища,
поэтому повторная или параллельная доставка одного события не может
начислить бонус дважды. Уведомления отправляются только после коммита.
"""
import logging
from typing import Optional

from shared.config import (
    REFERRAL_BONUS_AMOUNT,
    REFERRALS_SENDER_NAME,
    SYSTEM_SENDER_ID,
)
from shared.repositories import AccountRepository
from shared.schemas import (
    AccountSnapshot,
    LedgerErrorCode,
    LedgerOutcome,
    NotificationCreate,
    NotificationType,
    QualifyingActionResult,
    ReferralRecord,
)
from shared.transaction_retry import TransactionConflict, TransactionRetrier
from referral_api.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def format_naira(amount: int) -> str:
    return f"₦{amount:,}"


class ReferralLedgerService:
    """Обработка квалифицирующего действия (оплаченной подписки)"""

    def __init__(
        self,
        accounts: AccountRepository,
        notifications: NotificationService,
        bonus_amount: int = REFERRAL_BONUS_AMOUNT,
        retrier: Optional[TransactionRetrier] = None
    ):
        self.accounts = accounts
        self.notifications = notifications
        self.bonus_amount = bonus_amount
        self.retrier = retrier or TransactionRetrier()

    async def process_qualifying_action(self, account_id: str) -> QualifyingActionResult:
        """
        Обработать подтверждённую подписку аккаунта

        Вызывать только после независимой проверки платежа.
        Повторные вызовы для того же аккаунта безопасны.

        Returns:
            QualifyingActionResult: исход и коды ошибок (исключения не бросаются
            для AccountNotFound/TransactionConflict/ReferrerLookupAmbiguous/
            NotificationWriteFailed)
        """
        try:
            result, account = await self.retrier.run(lambda: self._apply(account_id))

        except TransactionConflict as e:
            logger.error(f"Referral transaction for {account_id} gave up: {e}")
            return QualifyingActionResult(
                account_id=account_id,
                outcome=LedgerOutcome.TRANSACTION_CONFLICT,
                errors=[LedgerErrorCode.TRANSACTION_CONFLICT]
            )

        if result.outcome == LedgerOutcome.ACCOUNT_NOT_FOUND:
            logger.warning(f"Subscribing account {account_id} not found")
            return result

        if result.outcome != LedgerOutcome.CREDITED:
            logger.info(f"No referral bonus for {account_id}: {result.outcome.value}")
            return result

        logger.info(
            f"Referral bonus of {format_naira(self.bonus_amount)} credited to "
            f"referrer {result.referrer_id} and account {account_id}"
        )

        await self._send_bonus_notifications(result, account)
        return result

    async def _apply(self, account_id: str) -> tuple[QualifyingActionResult, Optional[AccountSnapshot]]:
        """
        Тело транзакции. Может выполняться несколько раз, поэтому
        никакого состояния вне транзакции здесь не меняем.
        """
        async with self.accounts.transaction() as txn:
            account = await txn.get_account(account_id)

            if account is None:
                return QualifyingActionResult(
                    account_id=account_id,
                    outcome=LedgerOutcome.ACCOUNT_NOT_FOUND,
                    errors=[LedgerErrorCode.ACCOUNT_NOT_FOUND]
                ), None

            # Главная проверка против повторного начисления
            if account.has_completed_qualifying_action:
                return QualifyingActionResult(
                    account_id=account_id,
                    outcome=LedgerOutcome.ALREADY_PROCESSED
                ), account

            if not account.referred_by_code:
                await txn.mark_qualified(account_id)
                return QualifyingActionResult(
                    account_id=account_id,
                    outcome=LedgerOutcome.NOT_REFERRED
                ), account

            referrers = await txn.find_by_referral_code(account.referred_by_code)
            errors: list[LedgerErrorCode] = []

            if len(referrers) > 1:
                logger.error(
                    f"Referral code {account.referred_by_code} matches {len(referrers)} accounts, "
                    f"using {referrers[0].id}"
                )
                errors.append(LedgerErrorCode.REFERRER_LOOKUP_AMBIGUOUS)

            referrer = referrers[0] if referrers else None

            if referrer is None or referrer.id == account_id:
                logger.warning(
                    f"Referrer with code {account.referred_by_code} not found for {account_id}"
                )
                await txn.mark_qualified(account_id)
                return QualifyingActionResult(
                    account_id=account_id,
                    outcome=LedgerOutcome.REFERRER_NOT_FOUND,
                    errors=errors
                ), account

            record = ReferralRecord(
                referred_account_id=account.id,
                referred_full_name=account.full_name
            )
            was_pending = await txn.promote_referral(referrer.id, record)
            if not was_pending:
                logger.info(
                    f"No pending referral entry for {account_id} at {referrer.id}, "
                    f"recording it as successful directly"
                )

            await txn.credit(referrer.id, self.bonus_amount)
            await txn.credit(account.id, self.bonus_amount)
            await txn.mark_qualified(account.id)

            return QualifyingActionResult(
                account_id=account_id,
                outcome=LedgerOutcome.CREDITED,
                credited_amount=self.bonus_amount,
                referrer_id=referrer.id,
                errors=errors
            ), account

    async def _send_bonus_notifications(self, result: QualifyingActionResult, account: AccountSnapshot):
        """
        Уведомления рефереру и рефералу; ошибки только логируются
        """
        bonus = format_naira(self.bonus_amount)

        notifications = [
            NotificationCreate(
                recipient_id=result.referrer_id,
                sender_id=account.id,
                sender_name=account.full_name,
                type=NotificationType.REFERRAL_BONUS.value,
                text=f"Your referral, {account.full_name}, just subscribed! You've both earned {bonus}.",
                amount=self.bonus_amount
            ),
            NotificationCreate(
                recipient_id=account.id,
                sender_id=SYSTEM_SENDER_ID,
                sender_name=REFERRALS_SENDER_NAME,
                type=NotificationType.REFERRAL_BONUS.value,
                text=f"Welcome aboard! As a thank you for using a referral code, you've earned {bonus}.",
                amount=self.bonus_amount
            ),
        ]

        for notification in notifications:
            if await self.notifications.emit(notification):
                result.notifications_sent += 1
            else:
                result.errors.append(LedgerErrorCode.NOTIFICATION_WRITE_FAILED)
