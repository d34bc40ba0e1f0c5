"""
FilmRoom - Game Film Ingestion for Coaches
Main FastAPI Application Entry Point
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .routers import clips_router, videos_router, websocket_router
from .routers.websocket import broadcast_processing_state, set_broadcast_loop
from .services.container import build_services
from .utils.exceptions import FilmRoomError
from .utils.logger import setup_logger


# Set up logging
logger = setup_logger()

PUBLIC_PATHS = {
    "/",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings = get_settings()
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
    set_broadcast_loop(asyncio.get_running_loop())

    # Tests install their own service graph before startup
    services = getattr(app.state, "services", None)
    if services is None:
        services = build_services(settings, on_transition=broadcast_processing_state)
        app.state.services = services
    await services.start()

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} v{settings.app_version}")
    logger.info("=" * 60)
    logger.info(f"Data directory: {settings.data_dir}")
    logger.info(f"Poll interval: {settings.processing_poll_interval_seconds}s, "
                f"timeout: {settings.processing_timeout_seconds}s")

    if settings.s3_configured:
        logger.info(f"[OK] S3 bucket: {settings.s3_bucket_name}")
    else:
        logger.info(f"[-] S3 not configured (local storage in {settings.local_blob_dir})")

    if settings.mediaconvert_configured:
        logger.info("[OK] MediaConvert configured")
    else:
        logger.warning("[!] MediaConvert not configured (transcoding disabled)")

    if settings.api_key:
        logger.info("[OK] API key authentication enabled")
    else:
        logger.warning("[!] API key authentication disabled")
    logger.info("=" * 60)

    yield

    await services.stop()
    logger.info(f"Shutting down {settings.app_name}...")


def _extract_api_key(request: Request) -> str:
    api_key = request.headers.get("x-api-key", "").strip()
    if api_key:
        return api_key

    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header.split(" ", 1)[1].strip()
    return ""


async def api_key_auth_middleware(request: Request, call_next):
    settings = get_settings()
    if not settings.api_key or request.url.path in PUBLIC_PATHS:
        return await call_next(request)

    if _extract_api_key(request) != settings.api_key:
        return JSONResponse(
            status_code=401,
            content={"detail": "Unauthorized: invalid or missing API key"},
        )
    return await call_next(request)


async def filmroom_exception_handler(request: Request, exc: FilmRoomError):
    """Handle all FilmRoom custom exceptions"""
    if exc.status_code >= 500:
        logger.error(f"FilmRoomError [{exc.code}]: {exc.message}")
    else:
        logger.warning(f"FilmRoomError [{exc.code}]: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def value_error_handler(request: Request, exc: ValueError):
    """Handle validation errors"""
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": str(exc),
            "recoverable": True,
            "recovery_hint": "Check your input parameters and try again."
        }
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Handle any unhandled exceptions"""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again.",
            "recoverable": True,
            "recovery_hint": "If this persists, check the server logs for details."
        }
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        description="Game film upload, transcoding status and clip timelines for coaches",
        version=settings.app_version,
        lifespan=lifespan
    )

    cors_origins = settings.cors_allowed_origins or ["http://localhost:8000", "http://127.0.0.1:8000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(api_key_auth_middleware)

    app.add_exception_handler(FilmRoomError, filmroom_exception_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(videos_router)
    app.include_router(clips_router)
    app.include_router(websocket_router)

    @app.get("/")
    async def root():
        return {"message": f"{settings.app_name} API", "docs": "/docs"}

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "healthy", "app": settings.app_name}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "filmroom.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
