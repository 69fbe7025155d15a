"""
Сервис интеграции с Paystack
"""
import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import PAYSTACK_BASE_URL, PAYSTACK_SECRET_KEY, PAYSTACK_TIMEOUT
from shared.database import Payment

logger = logging.getLogger(__name__)


class PaystackError(Exception):
    """Ошибка API Paystack"""
    pass


class PaystackClient:
    """Клиент REST API Paystack"""

    def __init__(
        self,
        secret_key: str = PAYSTACK_SECRET_KEY,
        base_url: str = PAYSTACK_BASE_URL,
        timeout: float = PAYSTACK_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.secret_key = secret_key
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """
        Проверка подписи webhook (HMAC-SHA512 тела запроса секретным ключом)
        """
        if not signature or not self.secret_key:
            return False

        expected = hmac.new(self.secret_key.encode(), body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

    async def verify_transaction(self, reference: str) -> dict:
        """
        Проверить транзакцию через API

        Returns:
            Объект data из ответа Paystack

        Raises:
            PaystackError: сетевая ошибка или отказ API
        """
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=self.timeout,
                transport=self.transport
            ) as client:
                response = await client.get(f"/transaction/verify/{quote(reference, safe='')}")
        except httpx.HTTPError as e:
            logger.error(f"Paystack request failed for {reference}: {e}")
            raise PaystackError(str(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise PaystackError(f"Invalid JSON from Paystack (HTTP {response.status_code})") from e

        if response.status_code >= 400 or not payload.get("status"):
            message = payload.get("message") or f"HTTP {response.status_code}"
            logger.warning(f"Paystack verification error for {reference}: {message}")
            raise PaystackError(message)

        return payload.get("data") or {}


def extract_account_id(data: dict) -> Optional[str]:
    """
    account_id, переданный клиентом в metadata при инициализации платежа
    """
    metadata = data.get("metadata") or {}

    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            return None

    if not isinstance(metadata, dict):
        return None

    account_id = metadata.get("account_id") or metadata.get("uid")
    return str(account_id) if account_id else None


class PaymentService:
    """Сервис учёта платежей"""

    @staticmethod
    async def get_payment_by_reference(
        session: AsyncSession,
        reference: str
    ) -> Optional[Payment]:
        """
        Получить платеж по reference
        """
        result = await session.execute(
            select(Payment).where(Payment.reference == reference)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def record_verified_payment(
        session: AsyncSession,
        account_id: str,
        data: dict
    ) -> tuple[Optional[Payment], bool]:
        """
        Идемпотентно сохранить проверенный платеж

        Returns:
            (payment, processed_now): processed_now=False для повторной доставки
        """
        reference = data.get("reference")

        try:
            payment = await PaymentService.get_payment_by_reference(session, reference)

            # Проверка идемпотентности
            if payment and payment.processed_at:
                logger.info(
                    f"Payment {reference} already processed at {payment.processed_at}. "
                    f"Idempotent no-op."
                )
                return payment, False

            if not payment:
                payment = Payment(reference=reference, account_id=account_id)
                session.add(payment)

            payment.amount = int(data.get("amount") or 0)
            payment.currency = data.get("currency") or "NGN"
            payment.status = data.get("status") or "success"
            payment.raw_payload = data
            payment.processed_at = datetime.now()

            await session.commit()

            logger.info(f"Payment {reference} recorded for account {account_id}")
            return payment, True

        except IntegrityError:
            # Параллельная доставка того же события уже вставила строку
            await session.rollback()
            logger.info(f"Payment {reference} recorded concurrently, treating as duplicate")
            return None, False

        except Exception as e:
            await session.rollback()
            logger.error(f"Error recording payment {reference}: {e}", exc_info=True)
            raise
