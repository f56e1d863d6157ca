"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

# Canonical name first, then the names the field sensors write.
_TEMPERATURE_KEYS = ("temperature", "temperature_C")
_HUMIDITY_KEYS = ("humidity", "humidity_pct")
_CAPTURED_AT_KEYS = ("capturedAtMs", "timestamp")


def _first_number(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Optional[float]:
    # An unusable value under one name falls through to the next alias.
    for key in keys:
        value = payload.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            return number
    return None


@dataclass(frozen=True, slots=True)
class Reading:
    """A single sensor sample pushed by the vehicle unit.

    Either measurement may be absent; partial records are kept and simply
    contribute nothing to the statistic they lack.
    """

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    captured_at_ms: Optional[int] = None

    @classmethod
    def from_store(cls, payload: Any) -> "Reading":
        if not isinstance(payload, Mapping):
            return cls()
        captured = _first_number(payload, _CAPTURED_AT_KEYS)
        return cls(
            temperature=_first_number(payload, _TEMPERATURE_KEYS),
            humidity=_first_number(payload, _HUMIDITY_KEYS),
            captured_at_ms=int(captured) if captured is not None else None,
        )


@dataclass(frozen=True, slots=True)
class GpsPoint:
    lat: float
    lng: float
    timestamp_ms: int

    def to_store(self) -> dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "timestampMs": self.timestamp_ms}

    @classmethod
    def from_store(cls, payload: Mapping[str, Any]) -> "GpsPoint":
        return cls(
            lat=float(payload["lat"]),
            lng=float(payload["lng"]),
            timestamp_ms=int(payload.get("timestampMs", 0)),
        )


@dataclass(frozen=True, slots=True)
class TransportRecord:
    """Transport timestamps read back from the ledger (0 means never set)."""

    pickup_timestamp: int = 0
    delivery_timestamp: int = 0


@dataclass(frozen=True, slots=True)
class PickupEvent:
    """Advisory record of a local pickup; not authoritative."""

    batch_id: str
    transporter: str
    location: str
    time: str
