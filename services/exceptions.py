"""Error taxonomy shared by the relay services and the HTTP layer."""

from __future__ import annotations

from fastapi import status


class RelayError(Exception):
    """Base class for failures that map onto an HTTP error response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(RelayError):
    """A request is missing required fields or carries malformed values."""

    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamUnavailable(RelayError):
    """The store, geocoder or ledger could not be reached or answered with an error."""


class StoreUnavailable(UpstreamUnavailable):
    """Network failure or non-2xx response from the telemetry store."""

    def __init__(self, message: str, *, path: str = "", status_code: int | None = None) -> None:
        self.path = path
        self.upstream_status = status_code
        super().__init__(message)


class NotFound(RelayError):
    status_code = status.HTTP_404_NOT_FOUND


class NoDataFound(NotFound):
    """The store holds no raw readings for the shipment."""

    def __init__(self, message: str = "No sensor data found") -> None:
        super().__init__(message)


class LedgerSubmitFailed(RelayError):
    """The contract call was rejected or the transaction reverted."""
