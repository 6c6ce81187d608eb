from __future__ import annotations

import json
import logging
import math
import threading
from dataclasses import dataclass
from typing import Union

from pydantic import StrictBool, StrictFloat, StrictInt, StrictStr, TypeAdapter, ValidationError

from sensor_logger.core.errors import ParseError, StorageError
from sensor_logger.models.reading import Payload, Reading
from sensor_logger.repositories.base import ReadingRepository

logger = logging.getLogger(__name__)

TOPIC_NAMESPACE = "sensors"
TOPIC_SUFFIX = "data"
SUBSCRIPTION_TOPIC = f"{TOPIC_NAMESPACE}/+/{TOPIC_SUFFIX}"

MetricValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

_payload_adapter = TypeAdapter(dict[str, MetricValue])


def _reject_constant(name: str) -> float:
    raise ValueError(f"Non-finite number '{name}' is not allowed")


def parse_topic(topic: str) -> str:
    parts = topic.split("/")
    if len(parts) != 3 or parts[0] != TOPIC_NAMESPACE or parts[2] != TOPIC_SUFFIX:
        raise ParseError(
            f"Invalid topic '{topic}'. Expected: {TOPIC_NAMESPACE}/{{device_id}}/{TOPIC_SUFFIX}"
        )
    device_id = parts[1]
    if not device_id:
        raise ParseError(f"Invalid topic '{topic}': empty device id")
    return device_id


def parse_payload(raw: bytes, *, max_bytes: int | None = None) -> Payload:
    if max_bytes is not None and len(raw) > max_bytes:
        raise ParseError(f"Payload too large ({len(raw)} > {max_bytes} bytes)")
    try:
        text = raw.decode("utf-8")
        decoded = json.loads(text, parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Failed to parse JSON message: {e}") from e

    if not isinstance(decoded, dict):
        raise ParseError("Payload must be a JSON object of metric name to value")
    try:
        payload = _payload_adapter.validate_python(decoded)
    except ValidationError as e:
        raise ParseError(f"Invalid sensor payload: {e.error_count()} error(s)") from e

    for key, value in payload.items():
        if isinstance(value, float) and not math.isfinite(value):
            raise ParseError(f"Invalid value for '{key}' (must be finite number).")
    return payload


@dataclass(frozen=True)
class IngestionStats:
    received: int
    stored: int
    rejected: int
    failed: int


class ReadingIngestor:
    """Turns one broker message into at most one stored reading.

    Malformed topics or payloads are dropped (``rejected``); storage faults
    are dropped too (``failed``) without retrying. Neither propagates, so a
    single bad message never stops the subscriber.
    """

    def __init__(
        self, *, repo: ReadingRepository, max_payload_bytes: int | None = None
    ) -> None:
        self._repo = repo
        self._max_payload_bytes = max_payload_bytes
        self._lock = threading.Lock()
        self._received = 0
        self._stored = 0
        self._rejected = 0
        self._failed = 0

    def handle_message(self, topic: str, raw: bytes) -> Reading | None:
        self._count("received")
        logger.debug("[INGEST] Received message topic=%s bytes=%d", topic, len(raw))

        try:
            device_id = parse_topic(topic)
            payload = parse_payload(raw, max_bytes=self._max_payload_bytes)
        except ParseError as e:
            self._count("rejected")
            logger.warning("[INGEST] Discarded message on %s: %s", topic, e)
            return None

        try:
            reading = self._repo.insert(device_id=device_id, payload=payload)
        except StorageError:
            self._count("failed")
            logger.exception("[INGEST] Failed to store reading device=%s", device_id)
            return None

        self._count("stored")
        logger.info(
            "[INGEST] Stored reading id=%d device=%s metrics=%s",
            reading.id,
            device_id,
            ",".join(sorted(payload)),
        )
        return reading

    def stats(self) -> IngestionStats:
        with self._lock:
            return IngestionStats(
                received=self._received,
                stored=self._stored,
                rejected=self._rejected,
                failed=self._failed,
            )

    def _count(self, name: str) -> None:
        attr = f"_{name}"
        with self._lock:
            setattr(self, attr, getattr(self, attr) + 1)
