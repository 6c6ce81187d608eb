from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Select, delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sensor_logger.core.errors import StorageError
from sensor_logger.db.tables import SensorReadingRow
from sensor_logger.models.reading import (
    DeviceStats,
    DeviceSummary,
    MetricPoint,
    Payload,
    Reading,
)
from sensor_logger.repositories.payload import dump_payload, extract_metric, load_payload

logger = logging.getLogger(__name__)

METRIC_SCAN_BATCH = 500


class SqlReadingRepository:
    def __init__(self, *, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def ping(self) -> None:
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StorageError("Database unavailable") from e

    def insert(self, *, device_id: str, payload: Payload) -> Reading:
        try:
            serialized = dump_payload(payload)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Payload for '{device_id}' is not serializable") from e

        row = SensorReadingRow(
            device_id=device_id,
            timestamp=datetime.now(tz=timezone.utc),
            sensor_data=serialized,
        )
        try:
            with self._session_factory() as session:
                session.add(row)
                session.commit()
                session.refresh(row)
                reading = _to_reading(row)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to insert reading for '{device_id}'") from e

        logger.debug("[DB] Inserted sensor reading id=%d device=%s", reading.id, device_id)
        return reading

    def latest(self, *, device_id: str) -> Reading | None:
        stmt = (
            select(SensorReadingRow)
            .where(SensorReadingRow.device_id == device_id)
            .order_by(SensorReadingRow.timestamp.desc(), SensorReadingRow.id.desc())
            .limit(1)
        )
        try:
            with self._session_factory() as session:
                row = session.scalars(stmt).first()
                return _to_reading(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read latest reading for '{device_id}'") from e

    def devices_summary(self) -> list[DeviceSummary]:
        last_reading = func.max(SensorReadingRow.timestamp)
        stmt = (
            select(
                SensorReadingRow.device_id,
                func.count().label("reading_count"),
                func.min(SensorReadingRow.timestamp).label("first_reading"),
                last_reading.label("last_reading"),
            )
            .group_by(SensorReadingRow.device_id)
            .order_by(last_reading.desc(), SensorReadingRow.device_id)
        )
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            raise StorageError("Failed to summarize devices") from e

        return [
            DeviceSummary(
                device_id=r.device_id,
                reading_count=int(r.reading_count),
                first_reading=_as_utc(r.first_reading),
                last_reading=_as_utc(r.last_reading),
            )
            for r in rows
        ]

    def historical(
        self, *, device_id: str, since: datetime, limit: int
    ) -> list[Reading]:
        stmt = (
            _in_window(select(SensorReadingRow), device_id, since)
            .order_by(SensorReadingRow.timestamp.desc(), SensorReadingRow.id.desc())
            .limit(int(limit))
        )
        try:
            with self._session_factory() as session:
                return [_to_reading(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read history for '{device_id}'") from e

    def metric_series(
        self,
        *,
        device_id: str,
        metric: str,
        since: datetime,
        limit: int,
    ) -> list[MetricPoint]:
        stmt = (
            _in_window(
                select(
                    SensorReadingRow.id,
                    SensorReadingRow.timestamp,
                    SensorReadingRow.sensor_data,
                ),
                device_id,
                since,
            )
            .order_by(SensorReadingRow.timestamp.desc(), SensorReadingRow.id.desc())
            .execution_options(yield_per=METRIC_SCAN_BATCH)
        )

        points: list[MetricPoint] = []
        try:
            with self._session_factory() as session:
                for row in session.execute(stmt):
                    value = extract_metric(_decode(row.id, row.sensor_data), metric)
                    if value is None:
                        continue
                    points.append(
                        MetricPoint(
                            id=row.id,
                            device_id=device_id,
                            timestamp=_as_utc(row.timestamp),
                            value=value,
                        )
                    )
                    if len(points) >= limit:
                        break
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to read metric '{metric}' for '{device_id}'"
            ) from e
        return points

    def stats(self, *, device_id: str, since: datetime) -> DeviceStats | None:
        stmt = _in_window(
            select(
                func.count().label("total"),
                func.min(SensorReadingRow.timestamp).label("first_reading"),
                func.max(SensorReadingRow.timestamp).label("last_reading"),
            ),
            device_id,
            since,
        )
        try:
            with self._session_factory() as session:
                row = session.execute(stmt).one()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to compute stats for '{device_id}'") from e

        if not row.total:
            return None
        return DeviceStats(
            device_id=device_id,
            count=int(row.total),
            first_reading=_as_utc(row.first_reading),
            last_reading=_as_utc(row.last_reading),
        )

    def delete_readings(
        self, *, device_id: str, before: datetime | None = None
    ) -> int:
        stmt = delete(SensorReadingRow).where(SensorReadingRow.device_id == device_id)
        if before is not None:
            stmt = stmt.where(SensorReadingRow.timestamp < before)
        try:
            with self._session_factory() as session:
                result = session.execute(stmt)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete readings for '{device_id}'") from e

        removed = int(result.rowcount or 0)
        logger.info("[DB] Deleted %d readings device=%s", removed, device_id)
        return removed


def _in_window(stmt: Select, device_id: str, since: datetime) -> Select:
    return (
        stmt.where(SensorReadingRow.device_id == device_id)
        .where(SensorReadingRow.timestamp >= since)
    )


def _decode(reading_id: int, raw: str) -> Payload:
    try:
        return load_payload(raw)
    except ValueError as e:
        raise StorageError(f"Reading {reading_id} holds undecodable sensor_data") from e


def _to_reading(row: SensorReadingRow) -> Reading:
    return Reading(
        id=row.id,
        device_id=row.device_id,
        timestamp=_as_utc(row.timestamp),
        payload=_decode(row.id, row.sensor_data),
        created_at=row.created_at,
    )


def _as_utc(value: datetime | str) -> datetime:
    # Aggregates (min/max) bypass the column type and may come back raw.
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
