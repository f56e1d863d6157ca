"""Write and read paths for in-transit telemetry."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, List, Optional

from datastore.telemetry_store import TelemetryStore, build_default_store
from models.records import GpsPoint, Reading
from services.aggregator import Aggregator, ConsumerAverages
from services.exceptions import NoDataFound, StoreUnavailable
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class RouteSnapshot:
    latest: Optional[GpsPoint] = None
    history: List[GpsPoint] = field(default_factory=list)


class TrackingService:
    """Maps shipments and vehicles onto telemetry store paths.

    Raw readings are keyed by vehicle (the sensor unit writes them there);
    GPS views are keyed by batch.
    """

    def __init__(
        self,
        store: TelemetryStore,
        aggregator: Aggregator,
        readings_root: str = "vehicle_data",
        tracking_root: str = "tracking",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.readings_root = readings_root.strip("/")
        self.tracking_root = tracking_root.strip("/")
        self._clock = clock

    def readings_path(self, vehicle_id: str) -> str:
        return f"{self.readings_root}/{vehicle_id}"

    def history_path(self, batch_id: str) -> str:
        return f"{self.tracking_root}/{batch_id}/history"

    def latest_path(self, batch_id: str) -> str:
        return f"{self.tracking_root}/{batch_id}/latest"

    def start_transport(self, batch_id: str, vehicle_id: str) -> bool:
        """Clear leftover readings for the vehicle. Returns False if the store refused."""
        try:
            self.store.delete_all(self.readings_path(vehicle_id))
        except StoreUnavailable as exc:
            logger.warning(
                "Could not clear previous readings at trip start",
                extra={"batch_id": batch_id, "vehicle_id": vehicle_id, "reason": exc.message},
            )
            return False
        logger.info("Trip started", extra={"batch_id": batch_id, "vehicle_id": vehicle_id})
        return True

    def update_location(self, batch_id: str, lat: float, lng: float) -> GpsPoint:
        point = GpsPoint(lat=lat, lng=lng, timestamp_ms=int(self._clock() * 1000))
        payload = point.to_store()
        self.store.append(self.history_path(batch_id), payload)
        self.store.write_latest(self.latest_path(batch_id), payload)
        return point

    def route(self, batch_id: str) -> RouteSnapshot:
        history = [
            GpsPoint.from_store(value)
            for value in self.store.read_all(self.history_path(batch_id)).values()
            if isinstance(value, dict)
        ]
        latest_raw = self.store.read(self.latest_path(batch_id))
        latest = GpsPoint.from_store(latest_raw) if isinstance(latest_raw, dict) else None
        return RouteSnapshot(latest=latest, history=history)

    def fetch_readings(self, vehicle_id: str) -> list[Reading]:
        """Load raw readings in store-key order, raising NoDataFound when there are none."""
        raw = self.store.read_all(self.readings_path(vehicle_id))
        if not raw:
            raise NoDataFound()
        return [Reading.from_store(value) for value in raw.values()]

    def count_readings(self, vehicle_id: str) -> int:
        return len(self.store.read_all(self.readings_path(vehicle_id)))

    def archive_readings(self, vehicle_id: str) -> None:
        self.store.delete_all(self.readings_path(vehicle_id))

    def consumer_averages(self, vehicle_id: str) -> ConsumerAverages:
        return self.aggregator.consumer_averages(self.fetch_readings(vehicle_id))


@lru_cache
def build_default_tracking() -> TrackingService:
    settings = get_settings()
    return TrackingService(
        store=build_default_store(),
        aggregator=Aggregator(),
        readings_root=settings.readings_root,
        tracking_root=settings.tracking_root,
    )
