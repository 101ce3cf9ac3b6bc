"""Support tickets opened by registered users, and the public FAQ list."""

import logging
import aiosqlite

from core.errors import NotFoundError, StorageError, ValidationError
from db.support import (
    db_get_ticket,
    db_insert_ticket,
    db_list_faqs,
    db_list_tickets,
    db_update_ticket_status,
)

logger = logging.getLogger(__name__)

TICKET_STATUSES = ("open", "in_progress", "resolved")


def _check_status(status: str | None) -> None:
    if status is not None and status not in TICKET_STATUSES:
        raise ValidationError(
            f"Status must be one of: {', '.join(TICKET_STATUSES)}", "InvalidStatus"
        )


async def create_ticket(public_key: str, subject: str | None, message: str | None) -> dict:
    subject = (subject or "").strip()
    message = (message or "").strip()
    if not subject or not message:
        raise ValidationError("Subject and message are required", "MissingField")
    try:
        ticket = await db_insert_ticket(public_key, subject, message)
    except aiosqlite.Error as e:
        logger.error(f"Error creating ticket for {public_key[:16]}…: {e}")
        raise StorageError("Failed to create support ticket") from e
    logger.info(f"Support ticket {ticket['id']} opened by {public_key[:16]}…")
    return ticket


async def list_tickets(public_key: str, status: str | None = None) -> list[dict]:
    _check_status(status)
    try:
        return await db_list_tickets(public_key, status)
    except aiosqlite.Error as e:
        logger.error(f"Error fetching tickets: {e}")
        raise StorageError("Failed to fetch support tickets") from e


async def update_ticket_status(public_key: str, ticket_id: int, status: str | None) -> dict:
    if not status:
        raise ValidationError("Status is required", "MissingField")
    _check_status(status)
    try:
        updated = await db_update_ticket_status(ticket_id, public_key, status)
        ticket = await db_get_ticket(ticket_id, public_key) if updated else None
    except aiosqlite.Error as e:
        logger.error(f"Error updating ticket {ticket_id}: {e}")
        raise StorageError("Failed to update ticket status") from e
    if ticket is None:
        raise NotFoundError("Support ticket not found")
    return ticket


async def list_faqs(category: str | None = None) -> list[dict]:
    try:
        return await db_list_faqs(category or None)
    except aiosqlite.Error as e:
        logger.error(f"Error fetching FAQs: {e}")
        raise StorageError("Failed to fetch FAQs") from e
