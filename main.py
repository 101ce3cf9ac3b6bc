import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from config import ALLOWED_ORIGINS, DOMAIN, HTTP_TIMEOUT
from core.errors import NostrIdError, RateLimitError, from_request_errors
from core.security import schedule_sweep
from db.connection import close_db, init_db
from routers import nip05, notifications, profile, public, session, support, zaps
import services.lightning as lightning_svc

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    lightning_svc.http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True)
    await init_db()
    sweeper = asyncio.create_task(schedule_sweep())
    try:
        yield
    finally:
        sweeper.cancel()
        await lightning_svc.http_client.aclose()
        lightning_svc.http_client = None
        await close_db()


app = FastAPI(title="NIP-05 Nostr Identifier", lifespan=lifespan)
app.state.limiter = public.limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(NostrIdError)
async def nostr_id_error_handler(request: Request, exc: NostrIdError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} ({exc.__cause__!r})")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, RateLimitError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return await nostr_id_error_handler(request, from_request_errors(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception occurred", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(public.router)
app.include_router(nip05.router)
app.include_router(profile.router)
app.include_router(session.router)
app.include_router(zaps.router)
app.include_router(support.router)
app.include_router(notifications.router)


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting NIP-05 Nostr Identifier server...")
    logger.info(f"Domain: {DOMAIN}")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )
