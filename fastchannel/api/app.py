"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response

from fastchannel.api.routes import health_router, router
from fastchannel.api.webhook import webhook_router
from fastchannel.config import get_settings
from fastchannel.db import init_db
from fastchannel.errors import InvalidInput, NotFound, StoreFailure
from fastchannel.log import get_logger, setup_logging
from fastchannel.metrics import metrics_text

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings = get_settings()
    setup_logging(json_output=settings.log_json, level=settings.log_level)
    init_db()
    logger.info("api_started", port=settings.api_port, env=settings.fastchannel_env)
    yield
    logger.info("api_stopped")


# ---- error kinds -> HTTP ---------------------------------------------------

async def _not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": str(exc)})


async def _invalid_input(request: Request, exc: InvalidInput):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


async def _store_failure(request: Request, exc: StoreFailure):
    logger.error("request_store_failure", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Storage failure, please retry"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="FAST Channel Scheduler",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(NotFound, _not_found)
    app.add_exception_handler(InvalidInput, _invalid_input)
    app.add_exception_handler(StoreFailure, _store_failure)

    app.include_router(health_router)
    app.include_router(webhook_router)
    app.include_router(router)

    @app.get("/metrics")
    async def prom_metrics():
        return Response(content=metrics_text(), media_type="text/plain")

    return app


app = create_app()
