from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

SensorValue = Union[bool, int, float, str]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Envelope(BaseModel):
    success: bool = True
    timestamp: datetime = Field(default_factory=_utcnow)


class DeviceRead(BaseModel):
    device_id: str
    reading_count: int = Field(ge=0)
    last_reading: datetime
    first_reading: datetime


class DeviceList(Envelope):
    count: int = Field(ge=0)
    data: list[DeviceRead]


class ReadingRead(BaseModel):
    id: int
    device_id: str
    timestamp: datetime
    sensor_data: dict[str, Any]
    created_at: datetime | None = None


class LatestReading(Envelope):
    data: ReadingRead


class QueryParameters(BaseModel):
    hours: int
    limit: int


class HistoricalReadings(Envelope):
    device_id: str
    count: int = Field(ge=0)
    parameters: QueryParameters
    data: list[ReadingRead]


class MetricReading(BaseModel):
    id: int
    device_id: str
    timestamp: datetime
    sensor_value: SensorValue


class MetricSeries(Envelope):
    device_id: str
    sensor_type: str
    count: int = Field(ge=0)
    parameters: QueryParameters
    readings: list[MetricReading]


class TimeRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hours: int
    from_: datetime = Field(alias="from")
    to: datetime


class Statistics(BaseModel):
    total_readings: int = Field(ge=0)
    first_reading: datetime
    last_reading: datetime


class DeviceStatistics(Envelope):
    device_id: str
    time_range: TimeRange
    statistics: Statistics
