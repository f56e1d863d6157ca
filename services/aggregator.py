"""Aggregation logic for sensor readings."""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from models.records import Reading

# Order of the on-chain TransportSummary struct. The digest serializes in this
# order too, so it must not change once summaries have been anchored.
SUMMARY_FIELDS = (
    "minTemperature",
    "averageTemperature",
    "maxTemperature",
    "averageHumidity",
    "travelDurationSeconds",
    "maxGForce",
    "averageGForce",
    "vibrationIndex",
    "totalShockCount",
    "maxShockLatitude",
    "maxShockLongitude",
    "maxShockTimestamp",
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, like ``Math.round``."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class TransportSummary:
    """Fixed-shape arrival aggregate written once to the ledger."""

    min_temperature: int = 0
    average_temperature: int = 0
    max_temperature: int = 0
    average_humidity: int = 0
    travel_duration_seconds: int = 0
    # No accelerometer feeds this relay; the shock fields stay zero.
    max_g_force: int = 0
    average_g_force: int = 0
    vibration_index: int = 0
    total_shock_count: int = 0
    final_lat: str = ""
    final_lng: str = ""
    anchor_timestamp: int = 0

    def to_struct(self) -> dict[str, Any]:
        values = (
            self.min_temperature,
            self.average_temperature,
            self.max_temperature,
            self.average_humidity,
            self.travel_duration_seconds,
            self.max_g_force,
            self.average_g_force,
            self.vibration_index,
            self.total_shock_count,
            self.final_lat,
            self.final_lng,
            self.anchor_timestamp,
        )
        return dict(zip(SUMMARY_FIELDS, values))

    def as_contract_tuple(self) -> tuple[Any, ...]:
        return tuple(self.to_struct().values())


@dataclass(frozen=True)
class ConsumerAverages:
    """Display averages, formatted to two decimals."""

    avg_temp: str
    avg_humidity: str


def _split_measurements(readings: Iterable[Reading]) -> tuple[list[float], list[float]]:
    temperatures: list[float] = []
    humidities: list[float] = []
    for reading in readings:
        if reading.temperature is not None:
            temperatures.append(reading.temperature)
        if reading.humidity is not None:
            humidities.append(reading.humidity)
    return temperatures, humidities


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def travel_duration(pickup_timestamp: Optional[int], arrival_timestamp: int) -> int:
    """Seconds between pickup and arrival, clamped to zero on unknown pickup or clock skew."""
    if not pickup_timestamp or pickup_timestamp <= 0:
        return 0
    return max(0, int(arrival_timestamp) - int(pickup_timestamp))


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(
        self,
        readings: Iterable[Reading],
        pickup_timestamp: Optional[int],
        arrival_timestamp: int,
        arrival_lat: str,
        arrival_lng: str,
    ) -> TransportSummary:
        temperatures, humidities = _split_measurements(readings)

        if temperatures:
            min_temperature = round_half_up(min(temperatures))
            average_temperature = round_half_up(_mean(temperatures))
            max_temperature = round_half_up(max(temperatures))
        else:
            min_temperature = average_temperature = max_temperature = 0

        return TransportSummary(
            min_temperature=min_temperature,
            average_temperature=average_temperature,
            max_temperature=max_temperature,
            average_humidity=round_half_up(_mean(humidities)) if humidities else 0,
            travel_duration_seconds=travel_duration(pickup_timestamp, arrival_timestamp),
            final_lat=str(arrival_lat),
            final_lng=str(arrival_lng),
            anchor_timestamp=int(arrival_timestamp),
        )

    def consumer_averages(self, readings: Iterable[Reading]) -> ConsumerAverages:
        temperatures, humidities = _split_measurements(readings)
        return ConsumerAverages(
            avg_temp=f"{_mean(temperatures):.2f}",
            avg_humidity=f"{_mean(humidities):.2f}",
        )

    @staticmethod
    def digest(summary: TransportSummary) -> bytes:
        """SHA-256 over the compact, field-ordered JSON of the summary."""
        payload = json.dumps(summary.to_struct(), separators=(",", ":"), ensure_ascii=True)
        return hashlib.sha256(payload.encode("utf-8")).digest()
