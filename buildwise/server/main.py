"""BuildWise REST server entry point.

Entry point:
    uvicorn buildwise.server.main:app --host 0.0.0.0 --port 8000

Or run directly:
    python -m buildwise.server.main
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from buildwise import __version__
from buildwise.api.router import api_router
from buildwise.config import settings
from buildwise.db.session import dispose_engine
from buildwise.security.rate_limit import SlidingWindowRateLimiter, run_sweeper
from buildwise.store import DocumentStore, get_store

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Lifespan: rate-limit sweeper and engine disposal
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: configure logging, start the limiter sweeper.
    Shutdown: stop the sweeper, dispose the async engine.
    """
    configure_logging(settings.log_level)
    logger.info("BuildWise server starting up...")

    sweeper = asyncio.create_task(
        run_sweeper(app.state.resolve_limiter, settings.rate_limit_sweep_interval_seconds)
    )
    logger.info(
        "Resolve rate limiter ready: %d request(s) per %.0fs",
        settings.resolve_rate_limit,
        settings.resolve_rate_window_seconds,
    )

    yield

    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper

    logger.info("BuildWise server shutting down - disposing database engine...")
    await dispose_engine()
    logger.info("Database engine disposed.")


# ---------------------------------------------------------------------------
# Clean operation IDs for client generation: "{first tag}-{route name}".
# ---------------------------------------------------------------------------


def custom_generate_unique_id(route: APIRoute) -> str:
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


def create_app() -> FastAPI:
    app = FastAPI(
        title="BuildWise",
        description="Architecture module conflict detection, resolution and snapshot history",
        version=__version__,
        lifespan=lifespan,
        generate_unique_id_function=custom_generate_unique_id,
    )
    app.state.resolve_limiter = SlidingWindowRateLimiter(
        settings.resolve_rate_limit, settings.resolve_rate_window_seconds
    )

    @app.get("/health")
    async def health(store: DocumentStore = Depends(get_store)) -> JSONResponse:
        """Health check for load balancers and readiness probes."""
        db_ok = await store.health_check()
        return JSONResponse(
            {"status": "ok" if db_ok else "degraded", "service": "buildwise", "database": db_ok},
            status_code=200 if db_ok else 503,
        )

    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("buildwise.server.main:app", host="0.0.0.0", port=8000)
