"""
Эндпоинты выплат реферального баланса
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import get_session
from shared.schemas import (
    AccountResponse,
    BankDetails,
    PayoutDecisionRequest,
    PayoutRequestResponse,
)
from shared.validation import ValidationError
from referral_api.dependencies import get_notification_service
from referral_api.handlers.admin import require_admin
from referral_api.services.notification_service import NotificationService
from referral_api.services.payout_service import (
    AccountNotFoundError,
    InvalidPayoutStateError,
    PayoutConflictError,
    PayoutError,
    PayoutNotFoundError,
    PayoutService,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payouts"])


def payout_http_error(error: Exception) -> HTTPException:
    """Ошибка сервиса выплат -> HTTP ответ"""
    if isinstance(error, (AccountNotFoundError, PayoutNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (InvalidPayoutStateError, PayoutConflictError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


@router.put("/accounts/{account_id}/bank-details", response_model=AccountResponse)
async def update_bank_details(
    account_id: str,
    details: BankDetails,
    session: AsyncSession = Depends(get_session)
):
    try:
        return await PayoutService.update_bank_details(session, account_id, details)
    except (PayoutError, ValidationError) as e:
        raise payout_http_error(e)


@router.post(
    "/accounts/{account_id}/payouts",
    response_model=PayoutRequestResponse,
    status_code=status.HTTP_201_CREATED
)
async def request_payout(
    account_id: str,
    session: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service)
):
    """
    Запрос на вывод всего реферального баланса
    """
    try:
        return await PayoutService.request_payout(session, account_id, notifications)
    except PayoutError as e:
        raise payout_http_error(e)


@router.get(
    "/admin/payouts",
    response_model=list[PayoutRequestResponse],
    dependencies=[Depends(require_admin)]
)
async def list_payouts(
    status_filter: Optional[str] = None,
    session: AsyncSession = Depends(get_session)
):
    return await PayoutService.list_payout_requests(session, status_filter)


@router.post(
    "/admin/payouts/{request_id}/decision",
    response_model=PayoutRequestResponse,
    dependencies=[Depends(require_admin)]
)
async def decide_payout(
    request_id: str,
    request: PayoutDecisionRequest,
    session: AsyncSession = Depends(get_session),
    notifications: NotificationService = Depends(get_notification_service)
):
    """
    Отметить выплату проведённой или отклонить с возвратом суммы
    """
    try:
        return await PayoutService.decide_payout(
            session, request_id, request.decision, request.reason, notifications
        )
    except (PayoutError, ValidationError) as e:
        raise payout_http_error(e)
