"""Arrival workflow: aggregate raw readings and anchor the result on chain."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

from app.schemas import AnchorStatus, ShipmentStatus
from ledger.client import LedgerClient, build_default_ledger
from models.records import TransportRecord
from services.aggregator import Aggregator, TransportSummary
from services.confirmations import ConfirmationWorker, build_default_confirmations
from services.exceptions import StoreUnavailable
from services.tracking import TrackingService, build_default_tracking
from settings import AnchorStrategy, CompletionPolicy, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnchorOutcome:
    status: AnchorStatus
    tx_hash: str
    summary: TransportSummary
    duration_seconds: Optional[int] = None
    digest: Optional[bytes] = None


@dataclass(frozen=True)
class ShipmentSnapshot:
    status: ShipmentStatus
    record: TransportRecord
    reading_count: int


def derive_status(record: TransportRecord, reading_count: int) -> ShipmentStatus:
    """Infer the lifecycle state from ledger timestamps and what the store still holds."""
    if record.delivery_timestamp > 0:
        return ShipmentStatus.arrived if reading_count else ShipmentStatus.archived
    if record.pickup_timestamp > 0 or reading_count:
        return ShipmentStatus.in_transit
    return ShipmentStatus.not_started


class AnchorService:
    """Coordinates the store, aggregator and ledger when a shipment arrives.

    Exactly one ledger method is called per arrival, picked by ``strategy``.
    With ``CompletionPolicy.sync`` the call blocks until the transaction is
    mined; with ``CompletionPolicy.async_`` the confirmation wait is handed
    to the :class:`ConfirmationWorker` and the provisional hash is returned.
    Either way the raw readings are deleted once the anchor is confirmed.
    When ``ledger`` is None the client comes from ``ledger_factory`` the first
    time the chain is needed.
    """

    def __init__(
        self,
        tracking: TrackingService,
        ledger: Optional[LedgerClient],
        aggregator: Aggregator,
        confirmations: ConfirmationWorker,
        strategy: AnchorStrategy = AnchorStrategy.summary,
        completion: CompletionPolicy = CompletionPolicy.sync,
        clock: Callable[[], float] = time.time,
        ledger_factory: Callable[[], LedgerClient] = build_default_ledger,
    ) -> None:
        self.tracking = tracking
        self._ledger = ledger
        self._ledger_factory = ledger_factory
        self.aggregator = aggregator
        self.confirmations = confirmations
        self.strategy = strategy
        self.completion = completion
        self._clock = clock

    @property
    def ledger(self) -> LedgerClient:
        # Resolved on first chain access.
        if self._ledger is None:
            self._ledger = self._ledger_factory()
        return self._ledger

    def aggregate_and_anchor(
        self, batch_id: str, vehicle_id: str, arrival_lat: str, arrival_lng: str
    ) -> AnchorOutcome:
        context = {"batch_id": batch_id, "vehicle_id": vehicle_id}

        # Raises NoDataFound before the ledger is touched.
        readings = self.tracking.fetch_readings(vehicle_id)
        pickup_timestamp = self.ledger.fetch_pickup_timestamp(batch_id)
        arrival_timestamp = int(self._clock())

        summary = self.aggregator.aggregate(
            readings,
            pickup_timestamp=pickup_timestamp,
            arrival_timestamp=arrival_timestamp,
            arrival_lat=arrival_lat,
            arrival_lng=arrival_lng,
        )

        digest: Optional[bytes] = None
        logger.info(
            "Anchoring arrival summary",
            extra={
                **context,
                "strategy": self.strategy.value,
                "reading_count": len(readings),
                "duration_seconds": summary.travel_duration_seconds,
            },
        )
        if self.strategy is AnchorStrategy.digest:
            digest = self.aggregator.digest(summary)
            tx_hash = self.ledger.submit_digest(batch_id, digest, arrival_timestamp)
        else:
            tx_hash = self.ledger.submit_summary(batch_id, arrival_lat, arrival_lng, summary)

        if self.completion is CompletionPolicy.async_:
            self.confirmations.track(
                batch_id,
                tx_hash,
                confirm=self.ledger.wait_for_confirmation,
                on_confirmed=lambda _hash: self.tracking.archive_readings(vehicle_id),
            )
            logger.info("Anchor submitted, confirming in background", extra={**context, "tx_hash": tx_hash})
            return AnchorOutcome(
                status=AnchorStatus.processing,
                tx_hash=tx_hash,
                summary=summary,
                digest=digest,
            )

        confirmed_hash = self.ledger.wait_for_confirmation(tx_hash)
        logger.info("Anchor confirmed on chain", extra={**context, "tx_hash": confirmed_hash})
        self._archive_after_confirmation(vehicle_id, context)
        return AnchorOutcome(
            status=AnchorStatus.arrived,
            tx_hash=confirmed_hash,
            summary=summary,
            duration_seconds=summary.travel_duration_seconds,
            digest=digest,
        )

    def shipment_status(self, batch_id: str, vehicle_id: str) -> ShipmentSnapshot:
        record = self.ledger.fetch_transport_record(batch_id)
        reading_count = self.tracking.count_readings(vehicle_id)
        return ShipmentSnapshot(
            status=derive_status(record, reading_count),
            record=record,
            reading_count=reading_count,
        )

    def _archive_after_confirmation(self, vehicle_id: str, context: dict) -> None:
        # The anchor is final at this point; a failed cleanup is left for an operator.
        try:
            self.tracking.archive_readings(vehicle_id)
        except StoreUnavailable as exc:
            logger.error(
                "Raw readings not archived after confirmed anchor",
                extra={**context, "reason": exc.message},
            )


@lru_cache
def build_default_anchor_service() -> AnchorService:
    """Factory that wires the arrival workflow from settings."""
    settings = get_settings()
    return AnchorService(
        tracking=build_default_tracking(),
        ledger=None,
        aggregator=Aggregator(),
        confirmations=build_default_confirmations(),
        strategy=settings.anchor_strategy,
        completion=settings.anchor_completion,
    )
