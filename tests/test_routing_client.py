"""Routing (tier-2) client against a mocked HTTP transport."""

import httpx
import pytest

from ridecore.config import Settings
from ridecore.domain.entities import Location
from ridecore.domain.estimation import RoutingUnavailable
from ridecore.infrastructure.routing_client import DirectionsClient

URL = "https://routing.test/directions/json"
ORIGIN = Location(12.7402, 77.8240)
DESTINATION = Location(12.9716, 77.5946)


def client_for(handler) -> DirectionsClient:
    return DirectionsClient(URL, api_key="k-123", transport=httpx.MockTransport(handler))


def directions(*legs, status="OK"):
    return {
        "status": status,
        "routes": [
            {
                "legs": [
                    {"distance": {"value": m}, "duration": {"value": s}} for m, s in legs
                ]
            }
        ],
    }


class TestDirectionsClient:
    @pytest.mark.asyncio
    async def test_sums_route_legs(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json=directions((30_000, 2_400), (8_500, 660)))

        result = await client_for(handler).route(ORIGIN, DESTINATION)

        assert result.distance_km == pytest.approx(38.5)
        assert result.duration_seconds == 3_060
        assert seen["origin"] == "12.7402,77.824"
        assert seen["key"] == "k-123"
        assert seen["mode"] == "driving"

    @pytest.mark.asyncio
    async def test_zero_results_is_no_route(self):
        def handler(request):
            return httpx.Response(200, json={"status": "ZERO_RESULTS", "routes": []})

        assert await client_for(handler).route(ORIGIN, DESTINATION) is None

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        def handler(request):
            return httpx.Response(503, text="upstream down")

        with pytest.raises(RoutingUnavailable, match="503"):
            await client_for(handler).route(ORIGIN, DESTINATION)

    @pytest.mark.asyncio
    async def test_denied_request_is_unavailable(self):
        def handler(request):
            return httpx.Response(200, json={"status": "REQUEST_DENIED", "routes": []})

        with pytest.raises(RoutingUnavailable, match="REQUEST_DENIED"):
            await client_for(handler).route(ORIGIN, DESTINATION)

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(RoutingUnavailable, match="timed out"):
            await client_for(handler).route(ORIGIN, DESTINATION)

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(RoutingUnavailable, match="network error"):
            await client_for(handler).route(ORIGIN, DESTINATION)

    @pytest.mark.asyncio
    async def test_malformed_body_is_unavailable(self):
        def handler(request):
            return httpx.Response(200, text="<html>not json</html>")

        with pytest.raises(RoutingUnavailable):
            await client_for(handler).route(ORIGIN, DESTINATION)

    @pytest.mark.asyncio
    async def test_leg_without_distance_is_unavailable(self):
        def handler(request):
            return httpx.Response(
                200, json={"status": "OK", "routes": [{"legs": [{"duration": {"value": 60}}]}]}
            )

        with pytest.raises(RoutingUnavailable):
            await client_for(handler).route(ORIGIN, DESTINATION)

    def test_disabled_without_api_key(self):
        assert DirectionsClient.from_settings(Settings(routing_api_key="")) is None

    def test_built_from_settings(self):
        client = DirectionsClient.from_settings(
            Settings(routing_api_key="k-123", routing_timeout_seconds=2.5)
        )
        assert client.api_key == "k-123"
        assert client.timeout == 2.5
