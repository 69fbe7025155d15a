"""
Эндпоинты аккаунтов и реферальной программы
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import get_session
from shared.schemas import AccountCreate, AccountResponse, ReferralStats
from referral_api.services.referral_service import ReferralService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/accounts", tags=["referrals"])


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def register_account(
    request: AccountCreate,
    response: Response,
    session: AsyncSession = Depends(get_session)
):
    """
    Регистрация аккаунта (опционально с кодом пригласившего)
    """
    account, created = await ReferralService.register_account(
        session,
        account_id=request.account_id,
        full_name=request.full_name,
        email=request.email,
        referrer_code=request.referral_code
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return account


@router.post("/{account_id}/login", status_code=status.HTTP_204_NO_CONTENT)
async def touch_login(account_id: str, session: AsyncSession = Depends(get_session)):
    """Отметить вход пользователя (используется очисткой неактивных)"""
    if not await ReferralService.touch_login(session, account_id):
        raise HTTPException(status_code=404, detail=f"Account {account_id} not found")


@router.get("/{account_id}/referrals", response_model=ReferralStats)
async def referral_stats(account_id: str, session: AsyncSession = Depends(get_session)):
    stats = await ReferralService.get_referral_stats(session, account_id)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Account {account_id} not found")
    return stats
