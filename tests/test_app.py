from typing import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.telemetry_store import build_default_store
from services.aggregator import Aggregator
from services.anchoring import AnchorService
from services.confirmations import ConfirmationWorker, build_default_confirmations
from services.exceptions import LedgerSubmitFailed
from services.geocoder import GeocodingProxy, build_default_geocoder
from services.pickups import PickupRegistry
from services.tracking import TrackingService
from settings import AnchorStrategy, CompletionPolicy

READINGS = {
    "-a": {"temperature_C": 20, "humidity_pct": 55},
    "-b": {"temperature_C": 22, "humidity_pct": 57},
    "-c": {"temperature_C": 24, "humidity_pct": 50},
}


def _timeout_geocoder() -> GeocodingProxy:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    return GeocodingProxy(
        url="https://geo.example.test/reverse",
        user_agent="test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


@pytest.fixture
def relay(store, ledger, monkeypatch) -> Iterator[dict]:
    worker = ConfirmationWorker(workers=1)
    tracking = TrackingService(store=store, aggregator=Aggregator(), clock=lambda: 1180.0)
    anchor_service = AnchorService(
        tracking=tracking,
        ledger=ledger,
        aggregator=Aggregator(),
        confirmations=worker,
        clock=lambda: 1180.0,
    )
    pickups = PickupRegistry()

    monkeypatch.setattr("app.api.build_default_tracking", lambda: tracking)
    monkeypatch.setattr("app.api.build_default_anchor_service", lambda: anchor_service)
    monkeypatch.setattr("app.api.build_default_geocoder", _timeout_geocoder)
    monkeypatch.setattr("app.api.build_default_pickup_registry", lambda: pickups)

    yield {"anchor_service": anchor_service, "pickups": pickups, "worker": worker}
    worker.shutdown()


@pytest.fixture
def api_client(relay) -> Iterator[TestClient]:
    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_shuts_down_confirmation_worker_and_clears_cache() -> None:
    app = create_app()

    with TestClient(app):
        worker_during = build_default_confirmations()
        assert worker_during.executor._shutdown is False

    assert worker_during.executor._shutdown is True
    worker_after = build_default_confirmations()
    try:
        assert worker_after is not worker_during
    finally:
        worker_after.shutdown()
        build_default_confirmations.cache_clear()


def test_lifespan_closes_cached_http_clients() -> None:
    app = create_app()

    with TestClient(app):
        store = build_default_store()
        geocoder = build_default_geocoder()
        assert store._client.is_closed is False

    assert store._client.is_closed is True
    assert geocoder._client.is_closed is True
    assert build_default_store.cache_info().currsize == 0
    assert build_default_geocoder.cache_info().currsize == 0


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_start_transport_clears_previous_log(api_client: TestClient, realtime_db) -> None:
    realtime_db.seed("vehicle_data/TRUCK-7", READINGS)

    response = api_client.post("/start-transport", json={"batchId": 42, "vehicleId": "TRUCK-7"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "IoT monitoring started fresh."}
    assert realtime_db.get("vehicle_data/TRUCK-7") is None


def test_start_transport_survives_cleanup_failure(api_client: TestClient, realtime_db) -> None:
    realtime_db.fail_methods["DELETE"] = 503

    response = api_client.post("/start-transport", json={"batchId": "42", "vehicleId": "TRUCK-7"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert "could not be cleared" in body["message"]


def test_missing_fields_return_bad_request(api_client: TestClient) -> None:
    response = api_client.post("/start-transport", json={"batchId": "42"})

    assert response.status_code == 400
    body = response.json()
    assert "vehicleId" in body["error"]
    assert body["fields"] == ["vehicleId"]


def test_update_location_then_route_round_trip(api_client: TestClient) -> None:
    first = api_client.post("/update-location", json={"batchId": "42", "lat": 6.90, "lng": 79.85})
    second = api_client.post("/update-location", json={"batchId": "42", "lat": 7.29, "lng": 80.63})

    assert first.status_code == 200
    assert first.content == b""
    assert second.status_code == 200

    route = api_client.get("/route/42").json()
    assert route["batchId"] == "42"
    assert route["history"][-1] == {"lat": 7.29, "lng": 80.63, "timestampMs": 1180000}
    assert route["latest"] == route["history"][-1]
    assert len(route["history"]) == 2


def test_update_location_rejects_bad_coordinates(api_client: TestClient) -> None:
    response = api_client.post("/update-location", json={"batchId": "42", "lat": "north", "lng": 79.85})

    assert response.status_code == 400
    assert "lat" in response.json()["error"]


def test_update_location_store_outage_is_server_error(api_client: TestClient, realtime_db) -> None:
    realtime_db.unreachable = True

    response = api_client.post("/update-location", json={"batchId": "42", "lat": 6.9, "lng": 79.8})

    assert response.status_code == 500
    assert "unreachable" in response.json()["error"]


def test_placename_falls_back_when_geocoder_times_out(api_client: TestClient) -> None:
    response = api_client.get("/get-placename", params={"lat": "6.9", "lng": "79.8"})

    assert response.status_code == 200
    assert response.json() == {"name": "Location Selected"}


def test_aggregate_and_anchor_sync(api_client: TestClient, realtime_db, ledger) -> None:
    realtime_db.seed("vehicle_data/TRUCK-7", READINGS)

    response = api_client.post(
        "/aggregateAndAnchor",
        json={"batchId": "42", "vehicleId": "TRUCK-7", "arrivalLat": 6.9271, "arrivalLng": "79.8612"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ARRIVED"
    assert body["tx"] == ledger.tx_hash
    assert body["durationSeconds"] == 180
    assert "digest" not in body
    summary = body["summary"]
    assert summary["minTemperature"] == 20
    assert summary["averageTemperature"] == 22
    assert summary["maxTemperature"] == 24
    assert summary["averageHumidity"] == 54
    assert summary["travelDurationSeconds"] == 180
    assert summary["maxShockLatitude"] == "6.9271"
    assert summary["maxShockLongitude"] == "79.8612"
    assert summary["maxShockTimestamp"] == 1180
    assert summary["totalShockCount"] == 0


def test_aggregate_and_anchor_without_data_is_not_found(api_client: TestClient, ledger) -> None:
    response = api_client.post(
        "/aggregateAndAnchor",
        json={"batchId": "42", "vehicleId": "TRUCK-7", "arrivalLat": "6.9", "arrivalLng": "79.8"},
    )

    assert response.status_code == 404
    assert response.json() == {"error": "No sensor data found"}
    assert ledger.submissions == 0


def test_aggregate_and_anchor_surfaces_ledger_message(api_client: TestClient, realtime_db, ledger) -> None:
    realtime_db.seed("vehicle_data/TRUCK-7", READINGS)
    ledger.submit_error = LedgerSubmitFailed("execution reverted: Batch not in transit")

    response = api_client.post(
        "/aggregateAndAnchor",
        json={"batchId": "42", "vehicleId": "TRUCK-7", "arrivalLat": "6.9", "arrivalLng": "79.8"},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "execution reverted: Batch not in transit"}


def test_aggregate_and_anchor_async(api_client: TestClient, relay, realtime_db, ledger) -> None:
    realtime_db.seed("vehicle_data/TRUCK-7", READINGS)
    relay["anchor_service"].completion = CompletionPolicy.async_

    response = api_client.post(
        "/aggregateAndAnchor",
        json={"batchId": "42", "vehicleId": "TRUCK-7", "arrivalLat": "6.9", "arrivalLng": "79.8"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "PROCESSING"
    assert body["tx"] == ledger.tx_hash
    assert "durationSeconds" not in body
    assert body["summary"]["travelDurationSeconds"] == 180

    future = relay["worker"].pending(ledger.tx_hash)
    if future is not None:
        future.result(timeout=5)
    assert realtime_db.get("vehicle_data/TRUCK-7") is None


def test_aggregate_and_anchor_digest_variant(api_client: TestClient, relay, realtime_db, ledger) -> None:
    realtime_db.seed("vehicle_data/TRUCK-7", READINGS)
    relay["anchor_service"].strategy = AnchorStrategy.digest

    body = api_client.post(
        "/aggregateAndAnchor",
        json={"batchId": "42", "vehicleId": "TRUCK-7", "arrivalLat": "6.9", "arrivalLng": "79.8"},
    ).json()

    assert body["digest"].startswith("0x")
    assert len(body["digest"]) == 66
    assert bytes.fromhex(body["digest"][2:]) == ledger.digests[0][1]
    assert ledger.summaries == []


def test_consumer_data_reports_two_decimal_strings(api_client: TestClient, realtime_db) -> None:
    realtime_db.seed("vehicle_data/TRUCK-7", READINGS)

    response = api_client.get("/consumer-data/42", params={"vehicleId": "TRUCK-7"})

    assert response.status_code == 200
    assert response.json() == {"avgTemp": "22.00", "avgHumidity": "54.00"}


def test_consumer_data_defaults_to_batch_key(api_client: TestClient, realtime_db) -> None:
    realtime_db.seed("vehicle_data/42", {"-a": {"temperature_C": 3.333, "humidity_pct": 90}})

    assert api_client.get("/consumer-data/42").json() == {"avgTemp": "3.33", "avgHumidity": "90.00"}


def test_consumer_data_without_readings_is_not_found(api_client: TestClient) -> None:
    response = api_client.get("/consumer-data/42")

    assert response.status_code == 404
    assert response.json() == {"error": "No sensor data found"}


def test_local_pickup_is_recorded_in_memory(api_client: TestClient, relay) -> None:
    response = api_client.post(
        "/local-pickup",
        json={"batchId": "42", "transporter": "Nimal", "location": "Dambulla", "time": "08:30"},
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(relay["pickups"]) == 1

    record = api_client.get("/local-pickup/42")
    assert record.status_code == 200
    assert record.json() == {"batchId": "42", "transporter": "Nimal", "location": "Dambulla", "time": "08:30"}


def test_unknown_local_pickup_is_not_found(api_client: TestClient) -> None:
    response = api_client.get("/local-pickup/99")

    assert response.status_code == 404
    assert "99" in response.json()["error"]


def test_shipment_status(api_client: TestClient, realtime_db) -> None:
    realtime_db.seed("vehicle_data/TRUCK-7", READINGS)

    response = api_client.get("/shipments/42/status", params={"vehicleId": "TRUCK-7"})

    assert response.status_code == 200
    assert response.json() == {
        "batchId": "42",
        "status": "IN_TRANSIT",
        "pickupTimestamp": 1000,
        "deliveryTimestamp": 0,
        "readingCount": 3,
    }


def test_shipment_status_requires_vehicle(api_client: TestClient, ledger) -> None:
    response = api_client.get("/shipments/42/status")

    assert response.status_code == 400
    assert response.json()["fields"] == ["vehicleId"]
    assert ledger.reads == []


def test_unexpected_failure_is_rendered_as_json(relay, realtime_db) -> None:
    realtime_db.seed("tracking/42/history", {"-a": {"lng": 1.0}})
    app = create_app()

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/route/42")

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"error": "Internal server error"}
