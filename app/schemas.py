"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _coerce_text(value: Any) -> Any:
    # Clients send ids and coordinates as JSON numbers or strings interchangeably.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


Identifier = Annotated[str, BeforeValidator(_coerce_text), Field(min_length=1)]
CoordinateText = Annotated[str, BeforeValidator(_coerce_text), Field(min_length=1)]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ShipmentStatus(str, Enum):
    """Lifecycle states, derived from store and ledger contents on each request."""

    not_started = "NOT_STARTED"
    in_transit = "IN_TRANSIT"
    arrived = "ARRIVED"
    archived = "ARCHIVED"


class AnchorStatus(str, Enum):
    arrived = "ARRIVED"
    processing = "PROCESSING"


class StartTransportRequest(CamelModel):
    batch_id: Identifier = Field(..., alias="batchId")
    vehicle_id: Identifier = Field(..., alias="vehicleId")


class OperationResponse(BaseModel):
    success: bool
    message: str


class UpdateLocationRequest(CamelModel):
    batch_id: Identifier = Field(..., alias="batchId")
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PlaceNameResponse(BaseModel):
    name: str


class AggregateRequest(CamelModel):
    batch_id: Identifier = Field(..., alias="batchId")
    vehicle_id: Identifier = Field(..., alias="vehicleId")
    arrival_lat: CoordinateText = Field(..., alias="arrivalLat")
    arrival_lng: CoordinateText = Field(..., alias="arrivalLng")


class TransportSummaryModel(CamelModel):
    """Arrival aggregate in the on-chain struct's field names."""

    min_temperature: int = Field(..., alias="minTemperature")
    average_temperature: int = Field(..., alias="averageTemperature")
    max_temperature: int = Field(..., alias="maxTemperature")
    average_humidity: int = Field(..., alias="averageHumidity")
    travel_duration_seconds: int = Field(..., alias="travelDurationSeconds", ge=0)
    max_g_force: int = Field(0, alias="maxGForce")
    average_g_force: int = Field(0, alias="averageGForce")
    vibration_index: int = Field(0, alias="vibrationIndex")
    total_shock_count: int = Field(0, alias="totalShockCount")
    max_shock_latitude: str = Field(..., alias="maxShockLatitude")
    max_shock_longitude: str = Field(..., alias="maxShockLongitude")
    max_shock_timestamp: int = Field(..., alias="maxShockTimestamp")


class AnchorResponse(CamelModel):
    status: AnchorStatus
    tx: str
    duration_seconds: Optional[int] = Field(default=None, alias="durationSeconds")
    summary: TransportSummaryModel
    digest: Optional[str] = Field(
        default=None, description="Hex SHA-256 of the summary when anchoring by digest."
    )


class ConsumerDataResponse(CamelModel):
    avg_temp: str = Field(..., alias="avgTemp")
    avg_humidity: str = Field(..., alias="avgHumidity")


class LocalPickupRequest(CamelModel):
    batch_id: Identifier = Field(..., alias="batchId")
    transporter: Identifier
    location: Identifier
    time: Identifier


class PickupRecordResponse(CamelModel):
    batch_id: str = Field(..., alias="batchId")
    transporter: str
    location: str
    time: str


class GpsPointModel(CamelModel):
    lat: float
    lng: float
    timestamp_ms: int = Field(..., alias="timestampMs")


class RouteResponse(CamelModel):
    batch_id: str = Field(..., alias="batchId")
    latest: Optional[GpsPointModel] = None
    history: List[GpsPointModel] = Field(default_factory=list)


class ShipmentStatusResponse(CamelModel):
    batch_id: str = Field(..., alias="batchId")
    status: ShipmentStatus
    pickup_timestamp: int = Field(..., alias="pickupTimestamp")
    delivery_timestamp: int = Field(..., alias="deliveryTimestamp")
    reading_count: int = Field(..., alias="readingCount", ge=0)

