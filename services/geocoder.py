"""Reverse-geocoding proxy."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Optional

import httpx

from settings import get_settings

logger = logging.getLogger(__name__)

ADDRESS_PREFERENCE = ("road", "suburb", "shop", "amenity", "city", "town")
UNNAMED_PLACE = "Point on Map"
LOOKUP_FAILED = "Location Selected"


class GeocodingProxy:
    """Resolves coordinates to a short place name.

    The place name is only an annotation, so this never raises: lookup
    failures degrade to a fixed placeholder.
    """

    def __init__(
        self,
        url: str,
        user_agent: str,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url
        self.user_agent = user_agent
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def resolve_place_name(self, lat: Any, lng: Any) -> str:
        if lat in (None, "") or lng in (None, ""):
            return LOOKUP_FAILED
        try:
            response = self._client.get(
                self.url,
                params={"format": "jsonv2", "lat": str(lat), "lon": str(lng)},
                headers={"User-Agent": self.user_agent},
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "Reverse geocoding failed",
                extra={"reason": str(exc) or type(exc).__name__},
            )
            return LOOKUP_FAILED

        address = payload.get("address") if isinstance(payload, dict) else None
        if not isinstance(address, dict):
            return LOOKUP_FAILED
        for field_name in ADDRESS_PREFERENCE:
            value = address.get(field_name)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return UNNAMED_PLACE


@lru_cache
def build_default_geocoder() -> GeocodingProxy:
    settings = get_settings()
    return GeocodingProxy(
        url=settings.geocoder_url,
        user_agent=settings.geocoder_user_agent,
        timeout=settings.http_timeout,
    )
