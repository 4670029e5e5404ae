# dispatch_engine/api/app.py
"""
FastAPI приложение диспетчерского движка.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dispatch_engine import __version__
from dispatch_engine.api.routes import drivers_router, requests_router, settings_router
from dispatch_engine.api.schemas import HealthResponse
from dispatch_engine.common.constants import TypeMsg
from dispatch_engine.common.errors import DispatchError
from dispatch_engine.common.logger import log_info
from dispatch_engine.core.factory import build_services
from dispatch_engine.infra.database import close_db, get_db, init_db
from dispatch_engine.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from dispatch_engine.infra.redis_client import RedisBroadcaster, close_redis, get_redis, init_redis

SERVICE_NAME = "dispatch_engine"


def create_app(init_infra: bool = True) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        init_infra: Поднимать ли подключения (БД, Redis, RabbitMQ) в lifespan.
                    В режиме all их уже инициализировал main.py.
    """
    from dispatch_engine.config import settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if init_infra:
            await init_db()
            await init_redis()
            await init_event_bus()
        app.state.services = build_services(get_db(), get_event_bus(), RedisBroadcaster(get_redis()))
        await log_info("HTTP API готово к приёму запросов", type_msg=TypeMsg.INFO)
        try:
            yield
        finally:
            if init_infra:
                await close_event_bus()
                await close_redis()
                await close_db()

    app = FastAPI(
        title="Delivery Dispatch Engine",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
        await log_info(
            f"{request.method} {request.url.path}: {exc.code} ({exc.message})",
            type_msg=TypeMsg.DEBUG,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    prefix = settings.api.API_PREFIX
    app.include_router(requests_router, prefix=prefix)
    app.include_router(drivers_router, prefix=prefix)
    app.include_router(settings_router, prefix=prefix)

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", service=SERVICE_NAME, version=__version__)

    @app.get("/health/ready", response_model=HealthResponse)
    async def readiness_check() -> JSONResponse:
        checks = {
            "postgres": await get_db().health_check(),
            "redis": await get_redis().health_check(),
            "rabbitmq": await get_event_bus().health_check(),
        }
        body = HealthResponse(
            status="ok" if all(checks.values()) else "degraded",
            service=SERVICE_NAME,
            version=__version__,
            checks=checks,
        )
        return JSONResponse(
            status_code=200 if all(checks.values()) else 503,
            content=body.model_dump(),
        )

    return app


app = create_app()
