"""FastAPI application factory.

create_app() returns a configured FastAPI instance. Lifespan manages
startup/shutdown (database engine, outbound IdP HTTP client). Middleware,
error handlers, and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from flowapi import __version__
from flowapi.api import api_router
from flowapi.auth.dependencies import close_http_client
from flowapi.config import settings
from flowapi.errors import add_exception_handlers

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    Settings were already validated at import time, so a missing client id
    or signing secret never gets this far.
    """
    logger.info(
        "flowapi.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    yield

    logger.info("flowapi.shutdown")

    await close_http_client()

    from flowapi.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Flow API",
        description="Onboarding and authentication backend for the Flow App",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → BodySizeLimit → handler

    from flowapi.middleware.body_limit import BodySizeLimitMiddleware
    from flowapi.middleware.request_id import RequestIdMiddleware

    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(RequestIdMiddleware)

    add_exception_handlers(app)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: flowapi.main:app)
app = create_app()
