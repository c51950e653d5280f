from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .api.errors import register_exception_handlers
from .api.middleware.security import SecurityMiddleware
from .api.v1.router import api_router
from .config import Settings, settings as default_settings
from .core.container import build_container
from .utils.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .core.container import ServiceContainer

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    container: ServiceContainer | None = app.state.container
    if container is None:
        container = build_container(app.state.settings)
        app.state.container = container

    if container.settings.seed_categories_on_startup:
        try:
            await container.category_service.seed_defaults()
        except Exception as err:
            logger.error("Failed to seed default categories", extra={"error": str(err)})

    if not await container.media.check_available():
        logger.warning("ffmpeg/ffprobe not found; audio probing and transcoding will fail")
    if not container.settings.webhook_signature_required:
        logger.warning("Inbound webhook signature verification is DISABLED")

    yield


def create_app(container: ServiceContainer | None = None, settings: Settings | None = None) -> FastAPI:
    settings = container.settings if container is not None else (settings or default_settings)
    setup_logging(settings)

    app = FastAPI(
        title="Voice Notes API",
        debug=settings.debug,
        version="0.1.0",
        root_path=settings.root_path or "",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Accept-Language",
            "Content-Language",
            "Content-Type",
            "Authorization",
            "Range",
            "X-Requested-With",
        ],
        expose_headers=["Content-Range", "Accept-Ranges", "Content-Length", "Content-Disposition"],
        max_age=600,  # Cache preflight requests for 10 minutes
    )

    # Proxy headers (X-Forwarded-*) when behind ALB/ingress
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    # Trusted hosts (configure in env for production)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(SecurityMiddleware, auth_prefix=f"{settings.api_prefix}/auth")

    register_exception_handlers(app, include_traces=not settings.is_production)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
