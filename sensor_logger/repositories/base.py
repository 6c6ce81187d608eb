from __future__ import annotations

from datetime import datetime
from typing import Protocol

from sensor_logger.models.reading import (
    DeviceStats,
    DeviceSummary,
    MetricPoint,
    Payload,
    Reading,
)


class ReadingRepository(Protocol):
    def ping(self) -> None: ...

    def insert(self, *, device_id: str, payload: Payload) -> Reading: ...

    def latest(self, *, device_id: str) -> Reading | None: ...

    def devices_summary(self) -> list[DeviceSummary]: ...

    def historical(
        self, *, device_id: str, since: datetime, limit: int
    ) -> list[Reading]: ...

    def metric_series(
        self,
        *,
        device_id: str,
        metric: str,
        since: datetime,
        limit: int,
    ) -> list[MetricPoint]: ...

    def stats(self, *, device_id: str, since: datetime) -> DeviceStats | None: ...

    def delete_readings(
        self, *, device_id: str, before: datetime | None = None
    ) -> int: ...
