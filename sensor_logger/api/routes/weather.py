from __future__ import annotations

from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status

from sensor_logger.api.deps import get_open_meteo_client, get_settings
from sensor_logger.clients.open_meteo import OpenMeteoClient
from sensor_logger.core.config import Settings
from sensor_logger.schemas.weather import WeatherForecast

router = APIRouter(prefix="/weather")


@router.get("", response_model=WeatherForecast)
def current_weather(
    settings: Annotated[Settings, Depends(get_settings)],
    client: Annotated[OpenMeteoClient, Depends(get_open_meteo_client)],
    lat: Annotated[float | None, Query(ge=-90.0, le=90.0)] = None,
    lon: Annotated[float | None, Query(ge=-180.0, le=180.0)] = None,
) -> WeatherForecast:
    lat = lat if lat is not None else settings.weather_latitude
    lon = lon if lon is not None else settings.weather_longitude
    if lat is None or lon is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Missing coordinates", "message": "lat and lon required"},
        )
    try:
        weather = client.fetch_forecast(lat=lat, lon=lon)
    except (httpx.HTTPError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "Failed to fetch weather", "message": str(e)},
        ) from e
    return WeatherForecast(weather=weather)
