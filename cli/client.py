from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig

_SETTLED_STATUSES = {"ARCHIVED"}


def _is_settled(payload: Dict[str, Any]) -> bool:
    # Digest anchors never set a delivery timestamp, so an emptied raw log also
    # counts as settled once the arrival has been submitted.
    return payload.get("status") in _SETTLED_STATUSES or payload.get("readingCount") == 0


class ApiClient:
    """Minimal HTTP client for the relay service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=60.0)

    def close(self) -> None:
        self._client.close()

    def start_transport(self, batch_id: str, vehicle_id: str) -> Dict[str, Any]:
        return self._send("POST", "/start-transport", json={"batchId": batch_id, "vehicleId": vehicle_id})

    def update_location(self, batch_id: str, lat: float, lng: float) -> None:
        self._send("POST", "/update-location", json={"batchId": batch_id, "lat": lat, "lng": lng})

    def place_name(self, lat: float, lng: float) -> str:
        payload = self._send("GET", "/get-placename", params={"lat": lat, "lng": lng})
        return str(payload.get("name", ""))

    def aggregate_and_anchor(
        self, batch_id: str, vehicle_id: str, arrival_lat: str, arrival_lng: str
    ) -> Dict[str, Any]:
        return self._send(
            "POST",
            "/aggregateAndAnchor",
            json={
                "batchId": batch_id,
                "vehicleId": vehicle_id,
                "arrivalLat": arrival_lat,
                "arrivalLng": arrival_lng,
            },
        )

    def consumer_data(self, batch_id: str, vehicle_id: Optional[str] = None) -> Dict[str, Any]:
        params = {"vehicleId": vehicle_id} if vehicle_id else None
        return self._send("GET", f"/consumer-data/{batch_id}", params=params)

    def shipment_status(self, batch_id: str, vehicle_id: str) -> Dict[str, Any]:
        return self._send("GET", f"/shipments/{batch_id}/status", params={"vehicleId": vehicle_id})

    def poll_status(
        self, batch_id: str, vehicle_id: str, interval: float, timeout: float
    ) -> Dict[str, Any]:
        deadline = time.monotonic() + timeout
        last_payload: Dict[str, Any] | None = None
        while time.monotonic() <= deadline:
            last_payload = self.shipment_status(batch_id, vehicle_id)
            if _is_settled(last_payload):
                return last_payload
            time.sleep(interval)
        typer.secho(
            (
                f"Timed out waiting for batch {batch_id} to settle. "
                f"Last status: {last_payload.get('status') if last_payload else 'unknown'}"
            ),
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    def _send(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            typer.secho(f"Relay unreachable at {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
