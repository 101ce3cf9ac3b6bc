"""Per-identity notification feed.

``notify`` is best effort: a failed insert is logged and never fails the
action that triggered it.
"""

import logging
import aiosqlite

from core.errors import NotFoundError, StorageError
from db.notifications import (
    db_clear_notifications,
    db_count_unread,
    db_insert_notification,
    db_list_notifications,
    db_mark_read,
)

logger = logging.getLogger(__name__)

PROFILE_UPDATE = "profile_update"
NEW_REGISTRATION = "new_registration"
SESSION_EXPIRY = "session_expiry"


async def notify(public_key: str, type_: str, message: str, details: dict | None = None) -> int | None:
    try:
        return await db_insert_notification(public_key, type_, message, details)
    except aiosqlite.Error as e:
        logger.error(f"Failed to record {type_} notification for {public_key[:16]}…: {e}")
        return None


async def notify_session_expired(public_key: str) -> None:
    await notify(public_key, SESSION_EXPIRY, "Your session expired. Please log in again.")


async def feed(public_key: str, unread_only: bool = False) -> dict:
    try:
        notifications = await db_list_notifications(public_key, unread_only)
        unread = await db_count_unread(public_key)
    except aiosqlite.Error as e:
        logger.error(f"Error fetching notifications: {e}")
        raise StorageError("Failed to fetch notifications") from e
    return {"notifications": notifications, "unread_count": unread}


async def mark_read(public_key: str, notification_id: int) -> None:
    try:
        updated = await db_mark_read(public_key, notification_id)
    except aiosqlite.Error as e:
        logger.error(f"Error marking notification {notification_id} read: {e}")
        raise StorageError("Failed to update notification") from e
    if updated == 0:
        raise NotFoundError("Notification not found")


async def mark_all_read(public_key: str) -> int:
    try:
        return await db_mark_read(public_key)
    except aiosqlite.Error as e:
        logger.error(f"Error marking notifications read: {e}")
        raise StorageError("Failed to update notifications") from e


async def clear(public_key: str) -> int:
    try:
        return await db_clear_notifications(public_key)
    except aiosqlite.Error as e:
        logger.error(f"Error clearing notifications: {e}")
        raise StorageError("Failed to clear notifications") from e
