from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from sensor_logger.api.deps import get_reading_repository, get_subscriber
from sensor_logger.api.router import api_router
from sensor_logger.clients.open_meteo import OpenMeteoClient
from sensor_logger.core.config import Settings, load_settings
from sensor_logger.core.errors import StorageError
from sensor_logger.core.logging import configure_logging
from sensor_logger.db.engine import create_db_engine, create_session_factory, init_schema
from sensor_logger.mqtt.subscriber import MqttSubscriber
from sensor_logger.repositories.base import ReadingRepository
from sensor_logger.repositories.sql import SqlReadingRepository
from sensor_logger.services.ingestion import ReadingIngestor

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _error_response(status_code: int, body: dict, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, **body, "timestamp": _utc_now()},
        headers=headers,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        logger.info("Starting sensor logger env=%s", settings.env)

        engine = create_db_engine(settings)
        init_schema(engine)
        app.state.engine = engine
        app.state.session_factory = create_session_factory(engine)
        app.state.open_meteo_client = OpenMeteoClient(
            timeout_seconds=settings.weather_timeout_seconds,
            base_url=str(settings.weather_base_url),
        )

        subscriber: MqttSubscriber | None = None
        if settings.mqtt_enabled:
            # The subscriber is the only writer; it shares the engine's pool
            # with the request handlers.
            ingestor = ReadingIngestor(
                repo=SqlReadingRepository(session_factory=app.state.session_factory),
                max_payload_bytes=settings.mqtt_max_payload_bytes,
            )
            subscriber = MqttSubscriber.from_settings(settings, ingestor=ingestor)
            subscriber.start()
        else:
            logger.info("[MQTT] Ingestion disabled (APP_MQTT_ENABLED=false)")
        app.state.mqtt_subscriber = subscriber

        yield

        logger.info("Shutting down sensor logger")
        if subscriber is not None:
            subscriber.stop()
        app.state.open_meteo_client.close()
        engine.dispose()

    docs_enabled = settings.docs_enabled and not settings.is_production
    app = FastAPI(
        title="Sensor Logger API",
        version=VERSION,
        debug=settings.debug,
        docs_url="/docs" if docs_enabled else None,
        redoc_url=None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    if settings.trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    @app.middleware("http")
    async def security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if settings.is_production:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return _error_response(exc.status_code, body, getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            {
                "error": "Invalid parameter",
                "message": f"Invalid value for: {', '.join(fields)}",
            },
        )

    @app.get("/", tags=["meta"])
    def root():
        return {
            "message": "MQTT Sensor Data Logger API",
            "version": VERSION,
            "endpoints": {
                "health": "/health",
                "sensors": "/api/sensors",
                "weather": "/api/weather",
            },
            "timestamp": _utc_now(),
        }

    @app.get("/health", tags=["meta"])
    def health(
        repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
        subscriber: Annotated[MqttSubscriber | None, Depends(get_subscriber)],
    ):
        try:
            repo.ping()
            db_connected = True
        except StorageError:
            logger.exception("[DB] Health check failed")
            db_connected = False

        mqtt_status = (
            subscriber.status()
            if subscriber is not None
            else {"connected": False, "status": "not_initialized"}
        )
        return {
            "status": "ok" if db_connected else "degraded",
            "timestamp": _utc_now(),
            "mqtt": mqtt_status,
            "database": {"connected": db_connected},
        }

    app.include_router(api_router)
    return app
