import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from core import registrar
from core.security import SESSION_COOKIE, get_current_session, session_manager
from core.session import Session
from schemas import ProfileUpdateRequest

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


@router.get("/api/profile")
@limiter.limit("30/minute")
async def get_profile(request: Request, session: Session = Depends(get_current_session)):
    return await registrar.get_profile(session.public_key)


@router.put("/api/profile")
@limiter.limit("30/minute")
async def update_profile(
    request: Request,
    data: ProfileUpdateRequest,
    session: Session = Depends(get_current_session),
):
    profile = await registrar.update_profile(
        session.public_key,
        data.username.strip() if data.username else data.username,
        name=data.name,
        lightning_address=data.lightning_address,
        relays=data.relays,
    )
    return {"message": "Profile updated successfully!", "profile": profile}


@router.delete("/api/profile")
@limiter.limit("10/minute")
async def delete_profile(request: Request, session: Session = Depends(get_current_session)):
    await registrar.delete(session.public_key)
    await session_manager.logout(session.session_id)
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response
