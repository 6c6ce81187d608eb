from __future__ import annotations

import logging
from typing import Annotated, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from sensor_logger.api.deps import get_query_service
from sensor_logger.core.errors import InvalidParameter, NotFound, StorageError
from sensor_logger.models.reading import Reading
from sensor_logger.schemas.sensors import (
    DeviceList,
    DeviceRead,
    DeviceStatistics,
    HistoricalReadings,
    LatestReading,
    MetricReading,
    MetricSeries,
    QueryParameters,
    ReadingRead,
    Statistics,
    TimeRange,
)
from sensor_logger.services.readings import DEFAULT_HOURS, DEFAULT_LIMIT, ReadingQueryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sensors")

DeviceIdPath = Annotated[str, Path(min_length=1, max_length=255)]
Hours = Annotated[int, Query(description="Window size in hours, 1..8760")]
Limit = Annotated[int, Query(description="Maximum rows returned, 1..10000")]


def _reading_read(r: Reading) -> ReadingRead:
    return ReadingRead(
        id=r.id,
        device_id=r.device_id,
        timestamp=r.timestamp,
        sensor_data=dict(r.payload),
        created_at=r.created_at,
    )


def _raise_http(e: Exception, *, action: str, device_id: str | None = None) -> NoReturn:
    if isinstance(e, InvalidParameter):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid parameter", "message": str(e)},
        ) from e
    if isinstance(e, NotFound):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Device not found", "message": str(e), "device_id": device_id},
        ) from e
    logger.error("[API] Failed to retrieve %s: %s", action, e)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": f"Failed to retrieve {action}", "message": str(e)},
    ) from e


@router.get("", response_model=DeviceList)
def list_devices(
    service: Annotated[ReadingQueryService, Depends(get_query_service)],
) -> DeviceList:
    try:
        devices = service.list_devices()
    except StorageError as e:
        _raise_http(e, action="devices")
    return DeviceList(
        count=len(devices),
        data=[DeviceRead.model_validate(d.__dict__) for d in devices],
    )


@router.get("/{device_id}/latest", response_model=LatestReading)
def latest_reading(
    device_id: DeviceIdPath,
    service: Annotated[ReadingQueryService, Depends(get_query_service)],
) -> LatestReading:
    try:
        reading = service.latest(device_id)
    except (NotFound, StorageError) as e:
        _raise_http(e, action="latest reading", device_id=device_id)
    return LatestReading(data=_reading_read(reading))


@router.get("/{device_id}/history", response_model=HistoricalReadings)
def historical_readings(
    device_id: DeviceIdPath,
    service: Annotated[ReadingQueryService, Depends(get_query_service)],
    hours: Hours = DEFAULT_HOURS,
    limit: Limit = DEFAULT_LIMIT,
) -> HistoricalReadings:
    try:
        result = service.historical(device_id, hours=hours, limit=limit)
    except (InvalidParameter, StorageError) as e:
        _raise_http(e, action="historical readings")
    return HistoricalReadings(
        device_id=result.device_id,
        count=len(result.readings),
        parameters=QueryParameters(hours=result.hours, limit=result.limit),
        data=[_reading_read(r) for r in result.readings],
    )


@router.get("/{device_id}/sensor/{sensor_type}", response_model=MetricSeries)
def sensor_readings(
    device_id: DeviceIdPath,
    sensor_type: Annotated[str, Path(min_length=1, max_length=128)],
    service: Annotated[ReadingQueryService, Depends(get_query_service)],
    hours: Hours = DEFAULT_HOURS,
    limit: Limit = DEFAULT_LIMIT,
) -> MetricSeries:
    try:
        result = service.metric_series(device_id, sensor_type, hours=hours, limit=limit)
    except (InvalidParameter, StorageError) as e:
        _raise_http(e, action="sensor readings")
    return MetricSeries(
        device_id=result.device_id,
        sensor_type=result.metric,
        count=len(result.points),
        parameters=QueryParameters(hours=result.hours, limit=result.limit),
        readings=[
            MetricReading(
                id=p.id,
                device_id=p.device_id,
                timestamp=p.timestamp,
                sensor_value=p.value,
            )
            for p in result.points
        ],
    )


@router.get("/{device_id}/stats", response_model=DeviceStatistics)
def device_stats(
    device_id: DeviceIdPath,
    service: Annotated[ReadingQueryService, Depends(get_query_service)],
    hours: Hours = DEFAULT_HOURS,
) -> DeviceStatistics:
    try:
        result = service.stats(device_id, hours=hours)
    except (InvalidParameter, NotFound, StorageError) as e:
        _raise_http(e, action="device statistics", device_id=device_id)
    return DeviceStatistics(
        device_id=result.device_id,
        time_range=TimeRange(hours=result.hours, from_=result.start, to=result.stop),
        statistics=Statistics(
            total_readings=result.stats.count,
            first_reading=result.stats.first_reading,
            last_reading=result.stats.last_reading,
        ),
    )
