"""
Webhook и проверка платежей Paystack
Подтверждённая оплата подписки запускает начисление реферального бонуса
"""
import logging
import json
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import get_session
from shared.schemas import QualifyingActionResult
from referral_api.dependencies import get_ledger_service, get_paystack_client
from referral_api.services.payment_service import (
    PaymentService,
    PaystackClient,
    PaystackError,
    extract_account_id,
)
from referral_api.services.referral_ledger import ReferralLedgerService

logger = logging.getLogger(__name__)

router = APIRouter()


async def process_verified_payment(
    session: AsyncSession,
    ledger: ReferralLedgerService,
    data: dict
) -> Optional[QualifyingActionResult]:
    """
    Сохранить проверенный платеж и обработать подписку в леджере

    Леджер вызывается и при повторной доставке: он сам идемпотентен,
    а повтор доводит до конца событие, чья первая обработка упала.
    """
    reference = data.get("reference")
    account_id = extract_account_id(data)

    if not account_id:
        logger.error(f"Payment {reference} has no account_id in metadata")
        return None

    await PaymentService.record_verified_payment(session, account_id, data)

    result = await ledger.process_qualifying_action(account_id)
    logger.info(
        f"Payment {reference}: referral outcome for {account_id} = {result.outcome.value}, "
        f"errors={[e.value for e in result.errors]}"
    )
    return result


@router.post("/webhook/paystack")
async def paystack_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
    ledger: ReferralLedgerService = Depends(get_ledger_service),
    paystack: PaystackClient = Depends(get_paystack_client)
):
    """
    Обработка webhook от Paystack
    """
    try:
        body = await request.body()

        if not paystack.verify_signature(body, request.headers.get("x-paystack-signature")):
            logger.warning("Paystack webhook with invalid signature")
            # Всё равно возвращаем 200 для идемпотентности
            return {"status": "ok", "message": "unauthorized"}

        payload = json.loads(body)
        event_type = payload.get("event")
        data = payload.get("data") or {}
        reference = data.get("reference")

        logger.info(f"Received Paystack webhook: event={event_type}, reference={reference}")

        if event_type != "charge.success" or not reference:
            logger.info(f"Ignoring Paystack event {event_type}")
            return {"status": "ok"}

        # Дополнительная проверка через API Paystack
        verified = await paystack.verify_transaction(reference)
        if verified.get("status") != "success":
            logger.warning(
                f"Payment {reference} verification failed via API: status={verified.get('status')}"
            )
            return {"status": "ok", "message": "verification_failed"}

        await process_verified_payment(session, ledger, verified)

        return {"status": "ok"}

    except Exception as e:
        logger.error(f"Error processing Paystack webhook: {e}", exc_info=True)
        # ВСЕГДА возвращаем HTTP 200, даже при ошибке
        return {"status": "ok"}


@router.get("/api/paystack/verify")
async def verify_payment(
    reference: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
    ledger: ReferralLedgerService = Depends(get_ledger_service),
    paystack: PaystackClient = Depends(get_paystack_client)
):
    """
    Проверка платежа после возврата клиента с checkout
    """
    if not reference:
        return JSONResponse(status_code=400, content={"error": "Reference is required"})

    try:
        data = await paystack.verify_transaction(reference)
    except PaystackError as e:
        logger.error(f"Paystack verification error: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to verify transaction"}
        )

    if data.get("status") != "success":
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": data.get("gateway_response") or "Transaction not successful"
            }
        )

    result = await process_verified_payment(session, ledger, data)

    return {
        "success": True,
        "data": data,
        "referral": result.model_dump(mode="json") if result else None
    }
