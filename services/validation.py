"""Payload validation for inbound sensor readings.

Checks run in a fixed order and the first violation wins: ``asset_id``,
then the type of each numeric field, then the value ranges.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from models.records import SensorReading
from services.errors import ValidationError

NUMERIC_FIELDS = ("temperature", "pressure", "vibration", "energy_consumption")

TEMPERATURE_MIN = -50.0
TEMPERATURE_MAX = 150.0

_DATETIME_ADAPTER = TypeAdapter(datetime)

# (field, predicate that must hold, message when it does not)
RANGE_RULES: Tuple[Tuple[str, Callable[[float], bool], str], ...] = (
    (
        "temperature",
        lambda value: TEMPERATURE_MIN <= value <= TEMPERATURE_MAX,
        "Temperature must be between -50 and 150",
    ),
    ("pressure", lambda value: value >= 0, "Pressure must be non-negative"),
    ("vibration", lambda value: value >= 0, "Vibration must be non-negative"),
    (
        "energy_consumption",
        lambda value: value >= 0,
        "Energy consumption must be non-negative",
    ),
)


def _is_number(value: Any) -> bool:
    # bool is an int subclass but is not a measurement
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return isinstance(value, int) or math.isfinite(value)


def check_ranges(row: Mapping[str, float]) -> Optional[str]:
    """Return the message of the first violated range rule, if any."""
    for field, predicate, message in RANGE_RULES:
        if not predicate(row[field]):
            return message
    return None


def validate_sensor_data(data: Any) -> SensorReading:
    """Validate a decoded JSON body and build a :class:`SensorReading`.

    Raises :class:`ValidationError` naming the first problem found.
    """
    payload: Mapping[str, Any] = data if isinstance(data, Mapping) else {}

    asset_id = payload.get("asset_id")
    if not isinstance(asset_id, str) or not asset_id:
        raise ValidationError("Invalid asset_id")

    for field in NUMERIC_FIELDS:
        if not _is_number(payload.get(field)):
            raise ValidationError(f"Invalid {field}")

    values = {field: payload[field] for field in NUMERIC_FIELDS}
    violation = check_ranges(values)
    if violation is not None:
        raise ValidationError(violation)

    return SensorReading(asset_id=asset_id, **values)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp such as ``2024-01-01T00:00:00Z`` or ``...+0000``."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    # pydantic also reads bare numbers as unix seconds
    if candidate.lstrip("+-").replace(".", "", 1).isdigit():
        raise ValueError("Invalid timestamp format")

    try:
        return _DATETIME_ADAPTER.validate_python(candidate)
    except PydanticValidationError as exc:
        raise ValueError("Invalid timestamp format") from exc
