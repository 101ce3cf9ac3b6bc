import logging
from fastapi import APIRouter, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from core.errors import NotFoundError, ValidationError
from core.nostr import filter_relays
from db.records import db_get_by_username
import services.lightning as lightning_svc
from schemas import ZapInvoiceRequest

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


@router.post("/api/zaps/invoice")
@limiter.limit("10/minute")
async def create_zap_invoice(request: Request, data: ZapInvoiceRequest):
    recipient = await db_get_by_username(data.username)
    if recipient is None:
        raise NotFoundError("Recipient not found")
    if not recipient["lightning_address"]:
        raise ValidationError("Recipient has no Lightning Address", "MissingAddress")

    requester = lightning_svc.LightningInvoiceRequester(lightning_svc.http_client)
    pr = await requester.request_invoice(
        recipient["lightning_address"],
        data.amount,
        recipient["public_key"],
        relays=filter_relays(recipient["relays"]),
        comment=data.comment,
    )
    return {
        "pr": pr,
        "amount": lightning_svc.parse_amount(data.amount),
        "lightning_address": recipient["lightning_address"],
    }
