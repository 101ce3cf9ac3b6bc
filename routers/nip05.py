import logging
from fastapi import APIRouter, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from core import registrar
from core.security import action_limiter, client_id
from schemas import NIP05Request

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


@router.get("/api/nip05")
@limiter.limit("30/minute")
async def get_nip05(request: Request, name: str | None = None):
    return await registrar.lookup(name)


@router.post("/api/nip05")
@limiter.limit("10/minute")
async def register_nip05(request: Request, data: NIP05Request):
    await action_limiter.hit("register", client_id(request))
    username = data.username.strip() if data.username else data.username
    return await registrar.register(username, data.publicKey)
