"""
FastAPI-зависимости: сборка сервисов поверх общих сессий и клиентов
"""
from fastapi import Depends

from shared.database import AsyncSessionLocal
from shared.redis_client import notification_retry_queue
from shared.repositories import SqlAccountRepository, SqlNotificationRepository
from referral_api.services.notification_service import NotificationService
from referral_api.services.payment_service import PaystackClient
from referral_api.services.referral_ledger import ReferralLedgerService


def get_notification_service() -> NotificationService:
    return NotificationService(
        SqlNotificationRepository(AsyncSessionLocal),
        retry_queue=notification_retry_queue
    )


def get_ledger_service(
    notifications: NotificationService = Depends(get_notification_service)
) -> ReferralLedgerService:
    return ReferralLedgerService(SqlAccountRepository(AsyncSessionLocal), notifications)


def get_paystack_client() -> PaystackClient:
    return PaystackClient()
