import logging
from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from slowapi import Limiter
from slowapi.util import get_remote_address

from config import DOMAIN, TEMPLATES_DIR
from core.errors import StorageError
from core.nostr import convert_npub_to_hex
from core import registrar
from schemas import ConvertPubkeyRequest
from services.relays import check_relays, fastest_relays, validate_relay_url

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address)

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter()

NIP05_HEADERS = {"Access-Control-Allow-Origin": "*"}


@router.get("/", response_class=HTMLResponse)
async def index(request: Request):
    return templates.TemplateResponse(request, "index.html", {"domain": DOMAIN})


@router.get("/community", response_class=HTMLResponse)
async def community(request: Request):
    try:
        members = await registrar.list_members()
        error = None
    except StorageError as e:
        members = []
        error = e.message
    return templates.TemplateResponse(
        request, "community.html", {"domain": DOMAIN, "members": members, "error": error}
    )


@router.get("/health")
async def health():
    health_status = {"status": "healthy", "domain": DOMAIN}
    try:
        health_status["registered_users"] = (await registrar.stats())["total_users"]
    except StorageError:
        health_status["status"] = "degraded"
        health_status["database"] = "error"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@router.get("/.well-known/nostr.json")
async def get_nostr_json(name: str | None = None):
    try:
        document = await registrar.resolve(name)
    except StorageError:
        return JSONResponse(content={}, status_code=500, headers=NIP05_HEADERS)
    if document is None:
        return JSONResponse(content={}, status_code=404, headers=NIP05_HEADERS)
    return JSONResponse(content=document, headers=NIP05_HEADERS)


@router.post("/api/convert-pubkey")
@limiter.limit("20/minute")
async def convert_pubkey(request: Request, data: ConvertPubkeyRequest):
    try:
        hex_key = convert_npub_to_hex(data.pubkey)
        return {"hex": hex_key}
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/api/members")
@limiter.limit("30/minute")
async def members(request: Request):
    return await registrar.list_members()


@router.get("/api/stats")
@limiter.limit("30/minute")
async def stats(request: Request):
    return await registrar.stats()


@router.get("/api/relays/status")
@limiter.limit("10/minute")
async def relay_status(request: Request, url: list[str] | None = Query(default=None)):
    urls = [validate_relay_url(u) for u in url] if url else None
    statuses = await check_relays(urls)
    return {"relays": statuses, "fastest": fastest_relays(statuses)}
