"""
Утилита для отправки уведомлений админам
"""
import logging
from typing import Awaitable, Callable, Optional

from shared.config import ADMIN_IDS
from shared.schemas import NotificationCreate

logger = logging.getLogger(__name__)


async def notify_admin(
    message: str,
    sender_id: str,
    sender_name: str,
    notification_type: str,
    amount: Optional[int] = None,
    send_func: Optional[Callable[[NotificationCreate], Awaitable[bool]]] = None,
    admin_ids: Optional[list[str]] = None
) -> int:
    """
    Отправить уведомление всем админам

    Args:
        message: Текст уведомления
        sender_id: Аккаунт, от имени которого пишем
        sender_name: Отображаемое имя отправителя
        notification_type: Тип уведомления (payout_request, ...)
        amount: Сумма, если уведомление про деньги
        send_func: Async callable, записывающий NotificationCreate; возвращает успех
        admin_ids: Получатели (по умолчанию ADMIN_IDS)

    Returns:
        Количество доставленных уведомлений
    """
    recipients = ADMIN_IDS if admin_ids is None else admin_ids

    if not recipients:
        logger.warning("ADMIN_IDS is empty, cannot send notification")
        return 0

    if send_func is None:
        logger.warning("send_func not provided, cannot send notification")
        return 0

    success_count = 0
    failed_count = 0

    for admin_id in recipients:
        notification = NotificationCreate(
            recipient_id=admin_id,
            sender_id=sender_id,
            sender_name=sender_name,
            type=notification_type,
            text=message,
            amount=amount
        )
        try:
            if await send_func(notification):
                success_count += 1
                logger.info(f"Notification sent to admin {admin_id}")
            else:
                failed_count += 1
        except Exception as e:
            failed_count += 1
            logger.error(f"Failed to notify admin {admin_id}: {e}")

    logger.info(f"Admin notification sent: {success_count} success, {failed_count} failed")
    return success_count
