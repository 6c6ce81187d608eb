from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

Scalar = Union[bool, int, float, str]
Payload = dict[str, Scalar]


@dataclass(frozen=True)
class Reading:
    id: int
    device_id: str
    timestamp: datetime
    payload: Payload = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass(frozen=True)
class DeviceSummary:
    device_id: str
    reading_count: int
    first_reading: datetime
    last_reading: datetime


@dataclass(frozen=True)
class DeviceStats:
    device_id: str
    count: int
    first_reading: datetime
    last_reading: datetime


@dataclass(frozen=True)
class MetricPoint:
    id: int
    device_id: str
    timestamp: datetime
    value: Scalar
