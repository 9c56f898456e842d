from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from messaging_service.api.middleware.correlation_id import CorrelationIdMiddleware
from messaging_service.api.middleware.timing import RequestTimingMiddleware
from messaging_service.api.v1.routers import conversations, health, notifications, ws
from messaging_service.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from messaging_service.config import settings
from messaging_service.infrastructure.bus.redis_pubsub import (
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)
from messaging_service.infrastructure.db.uow import open_uow
from messaging_service.infrastructure.ws.hub import RealtimeHub

logger = logging.getLogger(__name__)


def build_hub() -> RealtimeHub:
    return RealtimeHub(
        open_uow,
        persistence_timeout=settings.PERSISTENCE_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    hub: RealtimeHub = app.state.hub
    subscriber: RedisPubSubSubscriber | None = None

    if settings.FANOUT_BACKEND == "redis":
        app.state.redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("Redis connection pool created")

        subscriber = RedisPubSubSubscriber(
            app.state.redis,
            settings.REDIS_PUBSUB_CHANNEL,
            hub.deliver,
        )
        await subscriber.start()
        hub.attach_publisher(RedisPubSubPublisher(app.state.redis), settings.REDIS_PUBSUB_CHANNEL)

    yield

    if subscriber is not None:
        hub.detach_publisher()
        await subscriber.stop()
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")


def create_app(hub: RealtimeHub | None = None) -> FastAPI:
    app = FastAPI(
        title="Marketplace Messaging Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = hub or build_hub()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(notifications.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"message": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"message": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"message": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _bad_request(_req: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"message": message})

    @app.exception_handler(TransientError)
    async def _transient(req: Request, exc: TransientError) -> JSONResponse:
        logger.warning("Transient failure on %s %s: %s", req.method, req.url.path, exc.detail)
        return JSONResponse(
            status_code=503,
            content={"message": exc.detail or "Service temporarily unavailable"},
        )

    @app.exception_handler(OperationalError)
    async def _db_unavailable(req: Request, exc: OperationalError) -> JSONResponse:
        logger.warning("Database unavailable on %s %s: %s", req.method, req.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"message": "Service temporarily unavailable"},
        )

    @app.exception_handler(Exception)
    async def _unexpected(req: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", req.method, req.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"message": "Internal server error"})
