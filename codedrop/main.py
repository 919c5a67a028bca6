"""
FastAPI application for one-time code drops.
Security-hardened with rate limiting, CORS, security headers and a brute-force guard.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from codedrop import __version__
from codedrop.archive import ZIP_MEDIA_TYPE, archive_filename, needs_archive, pack
from codedrop.cleanup import sweep_loop
from codedrop.config import Settings, get_settings
from codedrop.drop_service import DEFAULT_MIME_TYPE, DropService, build_service
from codedrop.drop_store import Drop, DropFile, DropKind
from codedrop.errors import CodeDropError, PayloadTooLarge, RateLimited
from codedrop.models import DropCreatedResponse, ErrorResponse, TextDropRequest, TextDropResponse

logger = logging.getLogger(__name__)


def get_service(request: Request) -> DropService:
    return request.app.state.service


def content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _created(drop: Drop) -> JSONResponse:
    body = DropCreatedResponse(code=drop.code, expires_at=drop.expires_at_datetime.isoformat())
    return JSONResponse(body.model_dump(), status_code=201)


# ============ DROP ENDPOINTS ============

def build_router(limiter: Limiter) -> APIRouter:
    """Drop endpoints, rate limited by the given app's limiter."""
    router = APIRouter(prefix="/api/drops")

    @router.post("/text")
    @limiter.limit("10/minute")  # Rate limit: 10 drops per minute
    async def create_text_drop(request: Request, body: TextDropRequest):
        """Create a text drop."""
        drop = await get_service(request).create_text(body.text)
        return _created(drop)

    @router.post("/files")
    @limiter.limit("10/minute")
    async def create_file_drop(request: Request, files: List[UploadFile] = File(...)):
        """Create a drop from one or more uploaded files."""
        service = get_service(request)
        limit = service.settings.max_payload_bytes

        drop_files = []
        total = 0
        for upload in files:
            data = await upload.read()
            total += len(data)
            # Stop reading once over the ceiling
            if total > limit:
                raise PayloadTooLarge(f"Files too large. Maximum total size is {limit} bytes.")
            drop_files.append(DropFile(
                name=upload.filename or "",
                mime_type=upload.content_type or DEFAULT_MIME_TYPE,
                data=data,
            ))

        drop = await service.create_files(drop_files)
        return _created(drop)

    @router.get("/{code}")
    @limiter.limit("30/minute")  # Rate limit: 30 access attempts per minute
    async def retrieve_drop(request: Request, code: str):
        """Retrieve and destroy a drop (one-time access)."""
        drop = await get_service(request).retrieve(code, get_remote_address(request))
        no_store = {"Cache-Control": "no-store"}

        if drop.kind is DropKind.TEXT:
            body = TextDropResponse(content=drop.text_payload)
            return JSONResponse(body.model_dump(), headers=no_store)

        # The drop is already gone from the store; a failed stream loses it for good.
        if needs_archive(drop.files):
            return StreamingResponse(
                pack(drop.files, created_at=drop.created_at),
                media_type=ZIP_MEDIA_TYPE,
                headers={**no_store, "Content-Disposition": content_disposition(archive_filename(drop.code))},
            )

        single = drop.files[0]
        return StreamingResponse(
            pack(drop.files),
            media_type=single.mime_type,
            headers={
                **no_store,
                "Content-Disposition": content_disposition(single.name),
                "Content-Length": str(single.size),
            },
        )

    return router


async def health():
    return {"status": "ok", "version": __version__}


async def codedrop_error_handler(request: Request, exc: CodeDropError):
    headers = {}
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(exc.cooldown_remaining_seconds)
    if exc.status_code >= 500:
        logger.error(f"Error: {exc.message}")
    body = ErrorResponse(**exc.to_dict()).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=exc.status_code, headers=headers)


# Security Headers Middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        # Prevent content type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer info
        response.headers["Referrer-Policy"] = "no-referrer"
        # JSON and downloads only, nothing to render
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        # HSTS - enforce HTTPS in production
        if not self.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def create_app(settings: Optional[Settings] = None, clock: Callable[[], float] = time.time) -> FastAPI:
    """Build the application around a fresh store and guard."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    service = build_service(settings, clock=clock)

    @asynccontextmanager
    async def lifespan(app):
        """Open the store and start the cleanup worker; undo both on shutdown."""
        await service.store.open()
        cleanup_task = asyncio.create_task(sweep_loop(service, settings.sweep_interval_seconds))
        logger.info("codedrop started successfully")
        yield
        logger.info("codedrop shutting down")
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        await service.store.clear()
        await service.store.close()
        service.guard.clear()

    app = FastAPI(title="codedrop", version=__version__, docs_url=None, redoc_url=None,
                  lifespan=lifespan)
    app.state.service = service
    app.state.settings = settings

    # Rate limiter setup, one per app
    limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(CodeDropError, codedrop_error_handler)

    # CORS Configuration - production origins only
    allowed_origins = [
        f"https://{settings.production_domain}",
        f"https://www.{settings.production_domain}",
    ] + (["http://localhost:8000", "http://127.0.0.1:8000"] if settings.debug else [])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, debug=settings.debug)

    app.include_router(build_router(limiter))
    app.add_api_route("/health", health, methods=["GET"])
    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
