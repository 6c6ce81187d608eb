from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import httpx

OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
FORECAST_DAYS = 7

DAILY_FIELDS = [
    "weathercode",
    "temperature_2m_max",
    "temperature_2m_min",
    "apparent_temperature_max",
    "apparent_temperature_min",
    "sunrise",
    "sunset",
    "precipitation_sum",
    "rain_sum",
    "showers_sum",
    "snowfall_sum",
    "precipitation_hours",
    "windspeed_10m_max",
    "windgusts_10m_max",
    "winddirection_10m_dominant",
    "shortwave_radiation_sum",
    "et0_fao_evapotranspiration",
    "uv_index_max",
    "uv_index_clear_sky_max",
]


class OpenMeteoClient:
    def __init__(
        self,
        *,
        timeout_seconds: float,
        base_url: str = OPEN_METEO_FORECAST_URL,
    ) -> None:
        self._base_url = base_url
        self._client = httpx.Client(
            timeout=timeout_seconds,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def fetch_forecast(
        self, *, lat: float, lon: float, today: date | None = None
    ) -> dict[str, Any]:
        """Current weather plus a daily forecast covering today and six more days."""
        start = today or date.today()
        end = start + timedelta(days=FORECAST_DAYS - 1)
        resp = self._client.get(
            self._base_url,
            params={
                "latitude": lat,
                "longitude": lon,
                "current_weather": "true",
                "daily": ",".join(DAILY_FIELDS),
                "timezone": "auto",
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            },
        )
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError("Unexpected Open-Meteo response shape")
        return payload
