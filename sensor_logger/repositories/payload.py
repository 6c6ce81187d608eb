from __future__ import annotations

import json
from typing import Any

from sensor_logger.models.reading import Payload, Scalar

_MISSING = object()


def dump_payload(payload: Payload) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def load_payload(raw: str) -> Payload:
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError("Stored sensor_data is not a JSON object")
    return value


def extract_metric(payload: dict[str, Any], metric: str) -> Scalar | None:
    """Return the named metric, or None when the reading does not carry it.

    A stored JSON null counts as absent, so callers never see null values.
    """
    value = payload.get(metric, _MISSING)
    if value is _MISSING or value is None:
        return None
    return value
