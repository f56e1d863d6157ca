"""Shared fakes for the telemetry store and the ledger."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from datastore.telemetry_store import TelemetryStore
from models.records import TransportRecord
from services.aggregator import TransportSummary


class FakeRealtimeDb:
    """In-memory stand-in for the realtime database REST API."""

    def __init__(self) -> None:
        self.tree: Dict[str, Any] = {}
        self.requests: List[tuple[str, str]] = []
        self.fail_with: Optional[int] = None
        self.fail_methods: Dict[str, int] = {}
        self.unreachable = False
        self._counter = 0

    def seed(self, path: str, value: Any) -> None:
        parts = [part for part in path.strip("/").split("/") if part]
        node = self.tree
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value

    def get(self, path: str) -> Any:
        node: Any = self.tree
        for part in [part for part in path.strip("/").split("/") if part]:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        assert path.endswith(".json"), path
        path = path[: -len(".json")]
        self.requests.append((request.method, path))

        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        failure = self.fail_methods.get(request.method, self.fail_with)
        if failure is not None:
            return httpx.Response(failure, json={"error": "unavailable"})

        if request.method == "GET":
            return httpx.Response(200, json=self.get(path))
        if request.method == "PUT":
            value = json.loads(request.content)
            self.seed(path, value)
            return httpx.Response(200, json=value)
        if request.method == "POST":
            self._counter += 1
            key = f"-N{self._counter:06d}"
            self.seed(f"{path}/{key}", json.loads(request.content))
            return httpx.Response(200, json={"name": key})
        if request.method == "DELETE":
            parts = [part for part in path.strip("/").split("/") if part]
            parent = self.get("/".join(parts[:-1])) if len(parts) > 1 else self.tree
            if isinstance(parent, dict):
                parent.pop(parts[-1], None)
            return httpx.Response(200, json=None)
        return httpx.Response(405)


class FakeLedger:
    """Duck-typed LedgerClient recording every call."""

    def __init__(self, pickup: int = 0, delivery: int = 0) -> None:
        self.record = TransportRecord(pickup_timestamp=pickup, delivery_timestamp=delivery)
        self.reads: List[str] = []
        self.summaries: List[tuple[str, str, str, TransportSummary]] = []
        self.digests: List[tuple[str, bytes, int]] = []
        self.confirmed: List[str] = []
        self.submit_error: Optional[Exception] = None
        self.confirm_error: Optional[Exception] = None
        self.tx_hash = "0x" + "ab" * 32

    def fetch_transport_record(self, batch_id: str) -> TransportRecord:
        self.reads.append(batch_id)
        return self.record

    def fetch_pickup_timestamp(self, batch_id: str) -> int:
        return self.fetch_transport_record(batch_id).pickup_timestamp

    def submit_summary(self, batch_id, arrival_lat, arrival_lng, summary) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        self.summaries.append((batch_id, arrival_lat, arrival_lng, summary))
        return self.tx_hash

    def submit_digest(self, batch_id, digest, period_end) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        self.digests.append((batch_id, digest, period_end))
        return self.tx_hash

    def wait_for_confirmation(self, tx_hash: str) -> str:
        if self.confirm_error is not None:
            raise self.confirm_error
        self.confirmed.append(tx_hash)
        return tx_hash

    @property
    def submissions(self) -> int:
        return len(self.summaries) + len(self.digests)


@pytest.fixture()
def realtime_db() -> FakeRealtimeDb:
    return FakeRealtimeDb()


@pytest.fixture()
def store(realtime_db: FakeRealtimeDb) -> TelemetryStore:
    client = httpx.Client(transport=httpx.MockTransport(realtime_db.handler))
    telemetry_store = TelemetryStore(base_url="https://fleet.example.test", client=client)
    yield telemetry_store
    telemetry_store.close()


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger(pickup=1000)

