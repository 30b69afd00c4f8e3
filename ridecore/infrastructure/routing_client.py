"""
Driving-distance client for the routing service (tier-2 estimation).

Speaks the Google Directions JSON shape: ``routes[0].legs[*].distance.value``
in metres and ``duration.value`` in seconds.  Transport failures and 5xx
answers raise ``RoutingUnavailable``; ``ZERO_RESULTS`` / ``NOT_FOUND``
return ``None`` so the estimator falls through to the geometric tier.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ridecore.domain.entities import Location
from ridecore.domain.estimation import RouteResult, RoutingUnavailable

logger = logging.getLogger(__name__)

_NO_ROUTE = {"ZERO_RESULTS", "NOT_FOUND"}


class DirectionsClient:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings) -> Optional["DirectionsClient"]:
        if not settings.routing_api_key:
            return None
        return cls(
            settings.routing_api_url,
            api_key=settings.routing_api_key,
            timeout=settings.routing_timeout_seconds,
        )

    async def route(
        self, origin: Location, destination: Location
    ) -> Optional[RouteResult]:
        params = {
            "origin": f"{origin.latitude},{origin.longitude}",
            "destination": f"{destination.latitude},{destination.longitude}",
            "mode": "driving",
        }
        if self.api_key:
            params["key"] = self.api_key

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(self.base_url, params=params)
        except httpx.TimeoutException as e:
            raise RoutingUnavailable(f"timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise RoutingUnavailable(f"network error: {e}") from e

        if response.status_code >= 500:
            raise RoutingUnavailable(f"server error {response.status_code}")
        if response.status_code >= 400:
            raise RoutingUnavailable(f"rejected with {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RoutingUnavailable("malformed response body") from e

        status = data.get("status", "OK")
        if status in _NO_ROUTE:
            return None
        if status != "OK":
            raise RoutingUnavailable(f"routing status {status}")

        routes = data.get("routes") or []
        if not routes:
            return None
        legs = routes[0].get("legs") or []
        try:
            metres = sum(float(leg["distance"]["value"]) for leg in legs)
            seconds = sum(float(leg["duration"]["value"]) for leg in legs)
        except (KeyError, TypeError, ValueError) as e:
            raise RoutingUnavailable("route legs missing distance/duration") from e

        logger.debug("Route %s -> %s: %.0f m, %.0f s", origin, destination, metres, seconds)
        return RouteResult(distance_km=metres / 1000.0, duration_seconds=seconds)
