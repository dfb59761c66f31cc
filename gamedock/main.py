"""Gamedock FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gamedock import __version__
from gamedock.api.dependencies import get_engine_client
from gamedock.config import get_settings
from gamedock.db import close_db, init_db
from gamedock.errors import GamedockError
from gamedock.services.gc.lifecycle import init_gc_scheduler, shutdown_gc_scheduler

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("gamedock.startup", version=__version__)
    await init_db()
    await init_gc_scheduler()

    yield

    logger.info("gamedock.shutdown")
    await shutdown_gc_scheduler()
    await get_engine_client().close()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Gamedock",
        description="Game session container orchestrator",
        version=__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

    @app.exception_handler(GamedockError)
    async def gamedock_error_handler(request: Request, exc: GamedockError):
        """Render every gamedock error with the same envelope."""
        request_id = getattr(request.state, "request_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id),
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    from gamedock.api.v1 import router as v1_router

    app.include_router(v1_router, prefix="/v1")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "gamedock.main:app",
        host=settings.server.host,
        port=settings.server.port,
    )
