from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from sunbeam.api.error_handling import register_exception_handlers
from sunbeam.api.routes import router
from sunbeam.api.schemas import APIResponse
from sunbeam.config import Settings, get_settings
from sunbeam.logging import get_logger, set_correlation_id
from sunbeam.service.runtime import Runtime

logger = get_logger(__name__)

__version__ = "0.1.0"


def create_app(
    settings: Optional[Settings] = None, *, runtime: Optional[Runtime] = None
) -> FastAPI:
    """Build the API app around one runtime that lives as long as the app."""
    settings = settings or (runtime.settings if runtime else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        try:
            await app.state.runtime.close()
            logger.info("runtime_cleanup_complete")
        except Exception as exc:
            logger.error("shutdown_failed", error=str(exc))

    app = FastAPI(title="Sunbeam Auth", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime or Runtime(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "Frostpaw",
            "Frostpaw-Server",
            "X-Request-ID",
        ],
        expose_headers=["X-Request-ID", "API-Version"],
        max_age=3600,
    )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):
        """Tag each request with X-Request-ID (client supplied or generated)."""
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        # Login responses carry credentials
        response.headers.setdefault("Cache-Control", "no-store")
        response.headers.setdefault("API-Version", __version__)
        if request.url.scheme == "https" and settings.enable_hsts:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=63072000; includeSubDomains"
            )
        return response

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/healthz", response_model=APIResponse, tags=["health"])
    async def healthz() -> APIResponse:
        return APIResponse(done=True)

    return app
