"""
Health check endpoints
"""
import logging
from fastapi import APIRouter, Response
from sqlalchemy import text

from shared.database import AsyncSessionLocal
from shared.redis_client import get_redis, notification_retry_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


async def _check_db():
    async with AsyncSessionLocal() as session:
        result = await session.execute(text("SELECT 1"))
        result.scalar()


async def _check_redis():
    client = await get_redis()
    await client.ping()


@router.get("")
async def health_check():
    """Базовый health check"""
    return {
        "status": "healthy",
        "service": "EliteHub Referral API"
    }


@router.get("/db")
async def health_check_db(response: Response):
    """
    Health check для PostgreSQL
    """
    try:
        await _check_db()

        return {
            "status": "healthy",
            "service": "postgresql"
        }

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        response.status_code = 503
        return {
            "status": "unhealthy",
            "service": "postgresql",
            "error": str(e)
        }


@router.get("/redis")
async def health_check_redis(response: Response):
    """
    Health check для Redis
    """
    try:
        await _check_redis()

        return {
            "status": "healthy",
            "service": "redis",
            "notification_retry_queue": await notification_retry_queue.size()
        }

    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        response.status_code = 503
        return {
            "status": "unhealthy",
            "service": "redis",
            "error": str(e)
        }


@router.get("/all")
async def health_check_all(response: Response):
    """
    Полный health check всех сервисов
    """
    results = {
        "status": "healthy",
        "services": {}
    }

    for name, check in (("postgresql", _check_db), ("redis", _check_redis)):
        try:
            await check()
            results["services"][name] = "healthy"
        except Exception as e:
            results["services"][name] = f"unhealthy: {str(e)}"
            results["status"] = "unhealthy"

    # Устанавливаем код ответа
    if results["status"] == "unhealthy":
        response.status_code = 503

    return results
