"""
Конфигурация приложения
"""
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

# Базовые пути
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# PostgreSQL
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://localhost/elitehub")

# Redis
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Paystack
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "")
PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
PAYSTACK_TIMEOUT = int(os.getenv("PAYSTACK_TIMEOUT", "30"))

# Сайт (для реферальных ссылок)
SITE_URL = os.getenv("SITE_URL", "https://www.elitehubng.com")

# Реферальная программа (суммы в наименьших единицах валюты)
REFERRAL_BONUS_AMOUNT = int(os.getenv("REFERRAL_BONUS_AMOUNT", "1000"))  # ₦1,000 обеим сторонам
PAYOUT_MINIMUM = int(os.getenv("PAYOUT_MINIMUM", "5000"))

# Транзакции
TRANSACTION_MAX_RETRIES = int(os.getenv("TRANSACTION_MAX_RETRIES", "5"))
TRANSACTION_RETRY_DELAY = float(os.getenv("TRANSACTION_RETRY_DELAY", "0.05"))  # секунды, база для backoff

# Уведомления
NOTIFICATION_RETRY_LIMIT = int(os.getenv("NOTIFICATION_RETRY_LIMIT", "5"))
SYSTEM_SENDER_ID = "system"
REFERRALS_SENDER_NAME = "EliteHub Referrals"
PAYOUTS_SENDER_NAME = "EliteHub Payouts"

# Очистка неактивных аккаунтов
INACTIVE_ACCOUNT_DAYS = int(os.getenv("INACTIVE_ACCOUNT_DAYS", "90"))  # ~3 месяца
CLEANUP_INTERVAL = int(os.getenv("CLEANUP_INTERVAL", "86400"))  # раз в сутки (секунды)

# Cron
CRON_SECRET = os.getenv("CRON_SECRET", "")

if not CRON_SECRET:
    print("⚠️ WARNING: CRON_SECRET is empty! /api/cron will reject every request.")

# Ключ для админских эндпоинтов (заголовок X-Admin-Key)
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "")

# Администраторы (список ID аккаунтов)
ADMIN_IDS_STR = os.getenv("ADMIN_IDS", "")  # Через запятую: "uidA,uidB"
ADMIN_IDS: List[str] = [id.strip() for id in ADMIN_IDS_STR.split(",") if id.strip()]

# Валидация ADMIN_IDS
if not ADMIN_IDS:
    import sys
    print("⚠️ WARNING: ADMIN_IDS is empty! Payout requests will not notify anyone.")
    print("🔧 Set ADMIN_IDS environment variable: ADMIN_IDS='uidA,uidB'")
    if os.getenv("REQUIRE_ADMIN_IDS", "false").lower() == "true":
        print("❌ REQUIRE_ADMIN_IDS=true, exiting...")
        sys.exit(1)

# API Server
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("PORT", "8080"))

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Создание директорий
DATA_DIR.mkdir(parents=True, exist_ok=True)
(DATA_DIR / "logs").mkdir(exist_ok=True)
