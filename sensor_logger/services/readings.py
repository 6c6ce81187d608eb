from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sensor_logger.core.errors import InvalidParameter, NotFound
from sensor_logger.models.reading import DeviceStats, DeviceSummary, MetricPoint, Reading
from sensor_logger.repositories.base import ReadingRepository

DEFAULT_HOURS = 24
DEFAULT_LIMIT = 100
MAX_HOURS = 24 * 365
MAX_LIMIT = 10_000


@dataclass(frozen=True)
class HistoricalResult:
    device_id: str
    hours: int
    limit: int
    readings: list[Reading]


@dataclass(frozen=True)
class MetricSeriesResult:
    device_id: str
    metric: str
    hours: int
    limit: int
    points: list[MetricPoint]


@dataclass(frozen=True)
class StatsResult:
    device_id: str
    hours: int
    start: datetime
    stop: datetime
    stats: DeviceStats


def validate_hours(hours: int) -> int:
    if isinstance(hours, bool) or not isinstance(hours, int) or not 0 < hours <= MAX_HOURS:
        raise InvalidParameter(
            f"Invalid hours parameter. Must be between 1 and {MAX_HOURS} (1 year)"
        )
    return hours


def validate_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or not 0 < limit <= MAX_LIMIT:
        raise InvalidParameter(
            f"Invalid limit parameter. Must be between 1 and {MAX_LIMIT}"
        )
    return limit


class ReadingQueryService:
    def __init__(self, repo: ReadingRepository) -> None:
        self._repo = repo

    def list_devices(self) -> list[DeviceSummary]:
        return self._repo.devices_summary()

    def latest(self, device_id: str) -> Reading:
        reading = self._repo.latest(device_id=device_id)
        if reading is None:
            raise NotFound(f"Device '{device_id}' not found or no readings available")
        return reading

    def historical(
        self, device_id: str, *, hours: int = DEFAULT_HOURS, limit: int = DEFAULT_LIMIT
    ) -> HistoricalResult:
        hours = validate_hours(hours)
        limit = validate_limit(limit)
        readings = self._repo.historical(
            device_id=device_id, since=_since(hours), limit=limit
        )
        return HistoricalResult(
            device_id=device_id, hours=hours, limit=limit, readings=readings
        )

    def metric_series(
        self,
        device_id: str,
        metric: str,
        *,
        hours: int = DEFAULT_HOURS,
        limit: int = DEFAULT_LIMIT,
    ) -> MetricSeriesResult:
        hours = validate_hours(hours)
        limit = validate_limit(limit)
        if not metric:
            raise InvalidParameter("Invalid sensor type. Must be a non-empty metric name")
        points = self._repo.metric_series(
            device_id=device_id, metric=metric, since=_since(hours), limit=limit
        )
        return MetricSeriesResult(
            device_id=device_id, metric=metric, hours=hours, limit=limit, points=points
        )

    def stats(self, device_id: str, *, hours: int = DEFAULT_HOURS) -> StatsResult:
        hours = validate_hours(hours)
        stop = datetime.now(tz=timezone.utc)
        start = stop - timedelta(hours=hours)
        stats = self._repo.stats(device_id=device_id, since=start)
        if stats is None:
            raise NotFound(
                f"No data found for device '{device_id}' in the last {hours} hour(s)"
            )
        return StatsResult(
            device_id=device_id, hours=hours, start=start, stop=stop, stats=stats
        )


def _since(hours: int) -> datetime:
    return datetime.now(tz=timezone.utc) - timedelta(hours=hours)
