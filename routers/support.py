import logging
from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from core import support
from core.security import get_current_session
from core.session import Session
from schemas import TicketCreateRequest, TicketStatusRequest

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


@router.get("/api/support/faqs")
@limiter.limit("30/minute")
async def faqs(request: Request, category: str | None = None):
    return await support.list_faqs(category)


@router.get("/api/support/tickets")
@limiter.limit("30/minute")
async def list_tickets(
    request: Request,
    status: str | None = None,
    session: Session = Depends(get_current_session),
):
    return await support.list_tickets(session.public_key, status)


@router.post("/api/support/tickets")
@limiter.limit("5/minute")
async def create_ticket(
    request: Request,
    data: TicketCreateRequest,
    session: Session = Depends(get_current_session),
):
    return await support.create_ticket(session.public_key, data.subject, data.message)


@router.put("/api/support/tickets/{ticket_id}")
@limiter.limit("30/minute")
async def update_ticket(
    request: Request,
    ticket_id: int,
    data: TicketStatusRequest,
    session: Session = Depends(get_current_session),
):
    return await support.update_ticket_status(session.public_key, ticket_id, data.status)
