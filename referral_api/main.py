"""
FastAPI приложение реферальной программы
Обрабатывает Paystack webhook, аккаунты, выплаты и cron
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.database import init_db, close_db
from shared.redis_client import close_redis
from shared.config import LOG_LEVEL, LOG_FORMAT, DATA_DIR
from referral_api.webhooks.paystack import router as paystack_router
from referral_api.handlers.referrals import router as referrals_router
from referral_api.handlers.payouts import router as payouts_router
from referral_api.handlers.admin import router as admin_router
from referral_api.health import router as health_router

# Настройка логирования
logging.basicConfig(
    level=LOG_LEVEL,
    format=LOG_FORMAT,
    handlers=[
        logging.FileHandler(DATA_DIR / "logs" / "referral_api.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager для FastAPI
    """
    # Startup
    logger.info("🚀 Starting Referral API...")

    # Инициализация БД
    await init_db()
    logger.info("✅ Database initialized")

    yield

    # Shutdown
    logger.info("🛑 Shutting down Referral API...")
    await close_db()
    await close_redis()
    logger.info("✅ Referral API stopped")


# Создание FastAPI приложения
app = FastAPI(
    title="EliteHub Referral API",
    description="Referral ledger, payouts and Paystack integration",
    version="1.0.0",
    lifespan=lifespan
)


# Подключение роутеров
app.include_router(health_router)
app.include_router(paystack_router)
app.include_router(referrals_router)
app.include_router(payouts_router)
app.include_router(admin_router)


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "status": "ok",
        "service": "EliteHub Referral API",
        "version": "1.0.0"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Глобальный обработчик ошибок
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


def main():
    """Точка входа console_scripts"""
    import uvicorn
    from shared.config import API_HOST, API_PORT

    uvicorn.run(
        "referral_api.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=False,
        log_level=LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
