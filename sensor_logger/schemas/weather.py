from __future__ import annotations

from typing import Any

from sensor_logger.schemas.sensors import Envelope


class WeatherForecast(Envelope):
    weather: dict[str, Any]
