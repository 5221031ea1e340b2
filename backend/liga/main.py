import asyncio
import contextlib
import os
from contextlib import asynccontextmanager
from typing import Mapping, Optional

import socketio
import uvicorn
from fastapi import APIRouter, FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from liga import __version__
from liga.api import build_domain_routers, include_domain_routers, health
from liga.core.config import Settings, settings
from liga.core.logging import configure_logging, logger
from liga.core.middleware import (
    JsonBodyMiddleware,
    OriginPolicyMiddleware,
    PublicFiles,
    RateLimitMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    http_exception_handler,
    route_not_found,
)
from liga.core.rate_limit_config import RateLimit, RateLimitSettings
from liga.core.rate_limiter import InMemoryRateLimiter, rate_limit_cleanup_task
from liga.core.security import OriginPolicy
from liga.realtime.presence import PresenceRegistry
from liga.realtime.socket import RealtimeGateway, create_socket_server


def create_app(
    config: Optional[Settings] = None,
    routers: Optional[Mapping[str, APIRouter]] = None,
    presence: Optional[PresenceRegistry] = None,
) -> FastAPI:
    """
    Build the HTTP edge and the realtime gateway.

    `routers` maps domain names (see `liga.api.DOMAIN_PREFIXES`) to the
    collaborator routers mounted under their prefix.
    """
    config = config or settings
    configure_logging(config)

    policy = OriginPolicy.from_settings(config)
    limit = RateLimit.from_settings(config)
    limit_settings = RateLimitSettings.from_settings(config)
    limiter = InMemoryRateLimiter()

    presence = presence if presence is not None else PresenceRegistry()
    sio = create_socket_server()
    gateway = RealtimeGateway(sio, presence, policy)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        cleanup = asyncio.create_task(
            rate_limit_cleanup_task(limiter, limit_settings.cleanup_interval)
        )
        logger.info(f"Servidor backend corriendo en el puerto {config.PORT}")
        yield
        # Shutdown
        cleanup.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup

    app = FastAPI(
        title="Liga Fantasy API",
        description="Backend API for the fantasy league manager",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.presence = presence
    app.state.gateway = gateway
    app.state.sio = sio
    app.state.rate_limiter = limiter

    # Middleware: the last one added runs first.
    # Order per request: context/error boundary -> origin -> security headers
    # -> rate limit -> JSON body -> routes/static.
    app.add_middleware(JsonBodyMiddleware, limit_bytes=config.JSON_BODY_LIMIT)
    app.add_middleware(RateLimitMiddleware, limiter=limiter, limit=limit, config=limit_settings)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(OriginPolicyMiddleware, policy=policy, allow_methods=config.CORS_METHODS)
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.router.default = route_not_found

    app.include_router(health.router, tags=["Health"])
    include_domain_routers(app, build_domain_routers(routers))

    # Static files answer whatever no route claimed
    if os.path.isdir(config.PUBLIC_DIR):
        app.mount("/", PublicFiles(directory=config.PUBLIC_DIR), name="public")
    else:
        logger.warn(f"Public directory not found, static files disabled: {config.PUBLIC_DIR}")

    return app


def create_asgi_app(app: FastAPI) -> socketio.ASGIApp:
    """Socket.IO in front: /socket.io/ goes to the gateway, the rest to FastAPI."""
    return socketio.ASGIApp(app.state.sio, other_asgi_app=app, socketio_path="socket.io")


app = create_app()
asgi_app = create_asgi_app(app)


def run():
    if settings.is_test:
        logger.info("NODE_ENV=test, not binding a socket")
        return
    uvicorn.run(asgi_app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
