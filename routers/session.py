import logging
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from config import LOGIN_EVENT_MAX_AGE
from core.security import SESSION_COOKIE, client_id, session_manager, set_session_cookie
from core.signer import SignedEventSigner
from db.records import db_touch_last_login
from schemas import LoginRequest

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


@router.post("/api/session/login")
@limiter.limit("20/minute")
async def login(request: Request, data: LoginRequest):
    signer = SignedEventSigner(data.event, max_age=LOGIN_EVENT_MAX_AGE)
    session = await session_manager.login(signer, client_id(request))
    await db_touch_last_login(session.public_key)
    response = JSONResponse({"public_key": session.public_key, "expiry": int(session.expiry)})
    set_session_cookie(response, session)
    return response


@router.get("/api/session")
@limiter.limit("120/minute")
async def current_session(request: Request):
    session = await session_manager.check(request.cookies.get(SESSION_COOKIE))
    response = JSONResponse({
        "state": "authenticated",
        "public_key": session.public_key,
        "expiry": int(session.expiry),
    })
    set_session_cookie(response, session)
    return response


@router.post("/api/session/logout")
@limiter.limit("20/minute")
async def logout(request: Request):
    await session_manager.logout(request.cookies.get(SESSION_COOKIE))
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response
