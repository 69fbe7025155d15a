"""
Админские эндпоинты: проверка ключа и cron-задачи
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse

from shared import config
from shared.database import AsyncSessionLocal
from worker.cleanup import InactiveAccountCleanup

logger = logging.getLogger(__name__)

router = APIRouter()


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided, expected)


async def require_admin(x_admin_key: Optional[str] = Header(default=None)):
    """Проверка, что запрос пришёл от админки"""
    if not _secret_matches(x_admin_key, config.ADMIN_API_KEY):
        logger.warning("Admin endpoint called with invalid key")
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_cleanup_service() -> InactiveAccountCleanup:
    return InactiveAccountCleanup(AsyncSessionLocal)


@router.get("/api/cron")
async def run_cron(
    secret: Optional[str] = None,
    cleanup: InactiveAccountCleanup = Depends(get_cleanup_service)
):
    """
    Внешний планировщик дёргает этот эндпоинт с ?secret=CRON_SECRET
    """
    if not _secret_matches(secret, config.CRON_SECRET):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        deleted_count, error_count = await cleanup.delete_inactive_accounts()
        return {
            "message": "Cron job executed successfully.",
            "deletedCount": deleted_count,
            "errorCount": error_count,
        }
    except Exception as e:
        logger.error(f"Error executing cron job: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
