"""
Утилиты для валидации входных данных
"""
import logging
import re
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# NUBAN: 10 цифр
ACCOUNT_NUMBER_PATTERN = re.compile(r"^\d{10}$")
REFERRAL_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,50}$")
MAX_NAME_LENGTH = 255


class ValidationError(Exception):
    """Ошибка валидации"""
    pass


def normalize_referral_code(code: Optional[str]) -> Optional[str]:
    """
    Привести реферальный код к каноничному виду

    Returns:
        Код в верхнем регистре без пробелов, либо None для пустого/некорректного кода
    """
    if not code:
        return None

    normalized = "".join(code.split()).upper()
    if not REFERRAL_CODE_PATTERN.match(normalized):
        logger.warning(f"Invalid referral code format: {code!r}")
        return None

    return normalized


def validate_bank_details(bank_name: str, account_number: str, account_name: str) -> Tuple[bool, str]:
    """
    Валидация банковских реквизитов для выплаты

    Returns:
        (valid, error_message)
    """
    if not bank_name or not bank_name.strip():
        return False, "Bank name is required"

    if not account_name or not account_name.strip():
        return False, "Account name is required"

    if len(bank_name) > MAX_NAME_LENGTH or len(account_name) > MAX_NAME_LENGTH:
        return False, f"Names must be at most {MAX_NAME_LENGTH} characters"

    if not account_number or not ACCOUNT_NUMBER_PATTERN.match(account_number.strip()):
        return False, "Account number must be exactly 10 digits"

    return True, ""
