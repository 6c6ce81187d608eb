from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from sensor_logger.clients.open_meteo import OpenMeteoClient
from sensor_logger.core.config import Settings
from sensor_logger.mqtt.subscriber import MqttSubscriber
from sensor_logger.repositories.base import ReadingRepository
from sensor_logger.repositories.sql import SqlReadingRepository
from sensor_logger.services.readings import ReadingQueryService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_reading_repository(request: Request) -> ReadingRepository:
    return SqlReadingRepository(session_factory=request.app.state.session_factory)


def get_query_service(
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
) -> ReadingQueryService:
    return ReadingQueryService(repo)


def get_open_meteo_client(request: Request) -> OpenMeteoClient:
    return request.app.state.open_meteo_client


def get_subscriber(request: Request) -> MqttSubscriber | None:
    subscriber = getattr(request.app.state, "mqtt_subscriber", None)
    if not isinstance(subscriber, MqttSubscriber):
        return None
    return subscriber
