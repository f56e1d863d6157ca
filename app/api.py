"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.schemas import (
    AggregateRequest,
    AnchorResponse,
    ConsumerDataResponse,
    GpsPointModel,
    LocalPickupRequest,
    OperationResponse,
    PickupRecordResponse,
    PlaceNameResponse,
    RouteResponse,
    ShipmentStatusResponse,
    StartTransportRequest,
    TransportSummaryModel,
    UpdateLocationRequest,
)
from models.records import GpsPoint, PickupEvent
from services.anchoring import AnchorService, build_default_anchor_service
from services.exceptions import NotFound
from services.geocoder import GeocodingProxy, build_default_geocoder
from services.pickups import PickupRegistry, build_default_pickup_registry
from services.tracking import TrackingService, build_default_tracking

router = APIRouter()


def get_tracking() -> TrackingService:
    return build_default_tracking()


def get_geocoder() -> GeocodingProxy:
    return build_default_geocoder()


def get_anchor_service() -> AnchorService:
    return build_default_anchor_service()


def get_pickups() -> PickupRegistry:
    return build_default_pickup_registry()


def _point_model(point: GpsPoint) -> GpsPointModel:
    return GpsPointModel(lat=point.lat, lng=point.lng, timestamp_ms=point.timestamp_ms)


@router.post(
    "/start-transport",
    response_model=OperationResponse,
    summary="Start a trip and clear the vehicle's previous sensor log.",
)
def start_transport(
    payload: StartTransportRequest,
    tracking: TrackingService = Depends(get_tracking),
) -> OperationResponse:
    cleared = tracking.start_transport(payload.batch_id, payload.vehicle_id)
    if cleared:
        return OperationResponse(success=True, message="IoT monitoring started fresh.")
    return OperationResponse(
        success=True,
        message="IoT monitoring started; previous sensor logs could not be cleared.",
    )


@router.post(
    "/update-location",
    status_code=status.HTTP_200_OK,
    response_class=Response,
    summary="Append a GPS breadcrumb and refresh the latest position.",
)
def update_location(
    payload: UpdateLocationRequest,
    tracking: TrackingService = Depends(get_tracking),
) -> Response:
    tracking.update_location(payload.batch_id, payload.lat, payload.lng)
    return Response(status_code=status.HTTP_200_OK)


@router.get(
    "/get-placename",
    response_model=PlaceNameResponse,
    summary="Reverse-geocode a coordinate; always answers with some name.",
)
def get_placename(
    lat: Optional[str] = Query(None),
    lng: Optional[str] = Query(None),
    geocoder: GeocodingProxy = Depends(get_geocoder),
) -> PlaceNameResponse:
    return PlaceNameResponse(name=geocoder.resolve_place_name(lat, lng))


@router.post(
    "/aggregateAndAnchor",
    response_model=AnchorResponse,
    response_model_exclude_none=True,
    summary="Aggregate the trip's readings and anchor the summary on chain.",
)
def aggregate_and_anchor(
    payload: AggregateRequest,
    anchor_service: AnchorService = Depends(get_anchor_service),
) -> AnchorResponse:
    outcome = anchor_service.aggregate_and_anchor(
        payload.batch_id, payload.vehicle_id, payload.arrival_lat, payload.arrival_lng
    )
    return AnchorResponse(
        status=outcome.status,
        tx=outcome.tx_hash,
        duration_seconds=outcome.duration_seconds,
        summary=TransportSummaryModel.model_validate(outcome.summary.to_struct()),
        digest="0x" + outcome.digest.hex() if outcome.digest is not None else None,
    )


@router.get(
    "/consumer-data/{batch_id}",
    response_model=ConsumerDataResponse,
    summary="Two-decimal temperature and humidity averages for display.",
)
def consumer_data(
    batch_id: str,
    vehicle_id: Optional[str] = Query(None, alias="vehicleId"),
    tracking: TrackingService = Depends(get_tracking),
) -> ConsumerDataResponse:
    averages = tracking.consumer_averages(vehicle_id or batch_id)
    return ConsumerDataResponse(avg_temp=averages.avg_temp, avg_humidity=averages.avg_humidity)


@router.post(
    "/local-pickup",
    response_model=OperationResponse,
    summary="Record an advisory, in-memory pickup event.",
)
def local_pickup(
    payload: LocalPickupRequest,
    pickups: PickupRegistry = Depends(get_pickups),
) -> OperationResponse:
    pickups.record(
        PickupEvent(
            batch_id=payload.batch_id,
            transporter=payload.transporter,
            location=payload.location,
            time=payload.time,
        )
    )
    return OperationResponse(
        success=True, message=f"Pickup recorded for batch {payload.batch_id}."
    )


@router.get(
    "/local-pickup/{batch_id}",
    response_model=PickupRecordResponse,
    summary="Read back the advisory pickup event for a batch.",
)
def get_local_pickup(
    batch_id: str,
    pickups: PickupRegistry = Depends(get_pickups),
) -> PickupRecordResponse:
    event = pickups.get(batch_id)
    if event is None:
        raise NotFound(f"No pickup recorded for batch {batch_id}")
    return PickupRecordResponse(
        batch_id=event.batch_id,
        transporter=event.transporter,
        location=event.location,
        time=event.time,
    )


@router.get(
    "/route/{batch_id}",
    response_model=RouteResponse,
    summary="Latest position and ordered breadcrumb history for a batch.",
)
def get_route(
    batch_id: str,
    tracking: TrackingService = Depends(get_tracking),
) -> RouteResponse:
    snapshot = tracking.route(batch_id)
    return RouteResponse(
        batch_id=batch_id,
        latest=_point_model(snapshot.latest) if snapshot.latest else None,
        history=[_point_model(point) for point in snapshot.history],
    )


@router.get(
    "/shipments/{batch_id}/status",
    response_model=ShipmentStatusResponse,
    summary="Lifecycle state derived from the store and the ledger.",
)
def shipment_status(
    batch_id: str,
    vehicle_id: str = Query(..., alias="vehicleId", min_length=1),
    anchor_service: AnchorService = Depends(get_anchor_service),
) -> ShipmentStatusResponse:
    snapshot = anchor_service.shipment_status(batch_id, vehicle_id)
    return ShipmentStatusResponse(
        batch_id=batch_id,
        status=snapshot.status,
        pickup_timestamp=snapshot.record.pickup_timestamp,
        delivery_timestamp=snapshot.record.delivery_timestamp,
        reading_count=snapshot.reading_count,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
