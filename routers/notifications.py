import logging
from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from core import notifications
from core.security import get_current_session
from core.session import Session

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


@router.get("/api/notifications")
@limiter.limit("60/minute")
async def list_notifications(
    request: Request,
    unread: bool = False,
    session: Session = Depends(get_current_session),
):
    return await notifications.feed(session.public_key, unread_only=unread)


@router.post("/api/notifications/read")
@limiter.limit("30/minute")
async def mark_all_read(request: Request, session: Session = Depends(get_current_session)):
    return {"updated": await notifications.mark_all_read(session.public_key)}


@router.post("/api/notifications/{notification_id}/read")
@limiter.limit("60/minute")
async def mark_read(
    request: Request,
    notification_id: int,
    session: Session = Depends(get_current_session),
):
    await notifications.mark_read(session.public_key, notification_id)
    return {"success": True}


@router.delete("/api/notifications")
@limiter.limit("10/minute")
async def clear_notifications(request: Request, session: Session = Depends(get_current_session)):
    return {"deleted": await notifications.clear(session.public_key)}
