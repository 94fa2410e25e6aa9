"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(slots=True)
class SensorReading:
    """One validated set of measurements for an asset."""

    asset_id: str
    temperature: float
    pressure: float
    vibration: float
    energy_consumption: float
    timestamp: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "temperature": self.temperature,
            "pressure": self.pressure,
            "vibration": self.vibration,
            "energy_consumption": self.energy_consumption,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class Identity:
    """A caller resolved from a bearer token by the auth provider."""

    user_id: str
    access_token: str
    email: Optional[str] = None
    role: Optional[str] = None
