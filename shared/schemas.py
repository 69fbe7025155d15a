"""
Pydantic-схемы: данные, которыми обмениваются сервисы, репозитории и API
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReferralRecord(BaseModel):
    """Элемент списков pending/successful у реферера"""
    referred_account_id: str
    referred_full_name: str = ""

    model_config = ConfigDict(from_attributes=True)


class AccountSnapshot(BaseModel):
    """Снимок аккаунта, прочитанный внутри транзакции"""
    id: str
    full_name: str = ""
    email: Optional[str] = None
    referral_code: Optional[str] = None
    referred_by_code: Optional[str] = None
    has_completed_qualifying_action: bool = False
    balance: int = 0

    model_config = ConfigDict(from_attributes=True)


class NotificationType(str, Enum):
    REFERRAL_BONUS = "referral_bonus"
    PAYOUT_REQUEST = "payout_request"
    PAYOUT_STATUS = "payout_status"


class NotificationCreate(BaseModel):
    """Новое уведомление; после записи не изменяется"""
    recipient_id: str
    sender_id: str
    sender_name: str
    type: str
    text: str
    amount: Optional[int] = None


class LedgerOutcome(str, Enum):
    CREDITED = "credited"
    ALREADY_PROCESSED = "already_processed"
    NOT_REFERRED = "not_referred"
    REFERRER_NOT_FOUND = "referrer_not_found"
    ACCOUNT_NOT_FOUND = "account_not_found"
    TRANSACTION_CONFLICT = "transaction_conflict"


class LedgerErrorCode(str, Enum):
    ACCOUNT_NOT_FOUND = "AccountNotFound"
    TRANSACTION_CONFLICT = "TransactionConflict"
    REFERRER_LOOKUP_AMBIGUOUS = "ReferrerLookupAmbiguous"
    NOTIFICATION_WRITE_FAILED = "NotificationWriteFailed"


class QualifyingActionResult(BaseModel):
    """Результат обработки квалифицирующего действия"""
    account_id: str
    outcome: LedgerOutcome
    credited_amount: int = 0
    referrer_id: Optional[str] = None
    notifications_sent: int = 0
    errors: list[LedgerErrorCode] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome not in (
            LedgerOutcome.ACCOUNT_NOT_FOUND,
            LedgerOutcome.TRANSACTION_CONFLICT,
        )


class AccountCreate(BaseModel):
    account_id: str = Field(..., min_length=1, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    referral_code: Optional[str] = Field(default=None, description="Код пригласившего")


class AccountResponse(BaseModel):
    id: str
    full_name: str
    email: Optional[str] = None
    referral_code: Optional[str] = None
    referred_by_code: Optional[str] = None
    balance: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReferralStats(BaseModel):
    account_id: str
    referral_code: Optional[str] = None
    referral_link: Optional[str] = None
    balance: int = 0
    pending_referrals: list[ReferralRecord] = Field(default_factory=list)
    successful_referrals: list[ReferralRecord] = Field(default_factory=list)
    payout_minimum: int
    progress_percentage: float = 0.0
    can_request_payout: bool = False


class BankDetails(BaseModel):
    bank_name: str
    account_number: str
    account_name: str


class PayoutDecision(str, Enum):
    PAID = "paid"
    REJECTED = "rejected"


class PayoutDecisionRequest(BaseModel):
    decision: PayoutDecision
    reason: Optional[str] = None


class PayoutRequestResponse(BaseModel):
    id: str
    account_id: str
    user_name: str
    user_email: Optional[str] = None
    amount: int
    bank_name: str
    account_number: str
    account_name: str
    status: str
    requested_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
