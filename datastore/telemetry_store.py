from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

from services.exceptions import StoreUnavailable
from settings import get_settings

logger = logging.getLogger(__name__)


class TelemetryStore:
    """Client for the realtime database's REST dialect (``{base}/{path}.json``).

    Every call is a single attempt. Transport errors and non-2xx responses
    surface as :class:`StoreUnavailable`; the caller decides whether that is
    fatal.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def write_latest(self, path: str, value: Any) -> None:
        """Overwrite the value at ``path``."""
        self._request("PUT", path, json=value)

    def append(self, path: str, value: Any) -> str:
        """Add ``value`` as a new child of ``path`` and return the store-assigned key."""
        response = self._request("POST", path, json=value)
        payload = self._decode(response, path)
        key = payload.get("name") if isinstance(payload, dict) else None
        return str(key) if key is not None else ""

    def read_all(self, path: str) -> Dict[str, Any]:
        """Return ``{child_key: value}`` under ``path``, ordered by key; ``{}`` when absent."""
        response = self._request("GET", path)
        payload = self._decode(response, path)
        if payload is None:
            return {}
        if isinstance(payload, list):
            # Sequential integer keys come back as a JSON array with null holes.
            return {str(i): item for i, item in enumerate(payload) if item is not None}
        if not isinstance(payload, dict):
            return {}
        return {key: payload[key] for key in sorted(payload)}

    def read(self, path: str) -> Any:
        response = self._request("GET", path)
        return self._decode(response, path)

    def delete_all(self, path: str) -> None:
        """Remove the whole subtree at ``path``."""
        self._request("DELETE", path)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.strip('/')}.json"

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, self._url(path), **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Telemetry store rejected %s request",
                method,
                extra={"store_path": path, "status": exc.response.status_code},
            )
            raise StoreUnavailable(
                f"Telemetry store returned {exc.response.status_code} for {path!r}",
                path=path,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Telemetry store unreachable",
                extra={"store_path": path, "reason": str(exc) or type(exc).__name__},
            )
            raise StoreUnavailable(
                f"Telemetry store unreachable for {path!r}", path=path
            ) from exc
        return response

    @staticmethod
    def _decode(response: httpx.Response, path: str) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreUnavailable(
                f"Telemetry store returned invalid JSON for {path!r}", path=path
            ) from exc


@lru_cache
def build_default_store(base_url: Optional[str] = None) -> TelemetryStore:
    settings = get_settings()
    url = settings.store_base_url if base_url is None else base_url
    return TelemetryStore(base_url=url, timeout=settings.http_timeout)
