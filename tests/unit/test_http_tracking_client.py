from __future__ import annotations

import json
from dataclasses import dataclass

import httpx
import pytest

from src.adapters.api.auth import issue_token
from src.adapters.api.dependencies import build_container
from src.adapters.client.http_tracking_client import HttpTrackingClient, TrackingApiError
from src.adapters.persistence.in_memory_position_store import InMemoryPositionStore
from src.adapters.settings import TrackingSettings
from src.app.ports.output import TransportClosed
from src.domain.models import TrackedUnit
from src.main import create_app

POSITION = {
    "unit_id": "bus-1",
    "latitude": 12.5,
    "longitude": 77.25,
    "timestamp": "2026-10-19T08:00:00+00:00",
}


def _client(handler) -> HttpTrackingClient:
    return HttpTrackingClient(
        base_url="http://test", token="tok", transport=httpx.MockTransport(handler)
    )


@pytest.mark.unit
@pytest.mark.anyio
async def test_get_position_sends_bearer_and_parses() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=POSITION)

    async with _client(handler) as client:
        position = await client.get_position("bus-1")

    assert seen[0].url.path == "/bus/bus-1/location"
    assert seen[0].headers["authorization"] == "Bearer tok"
    assert (position.latitude, position.longitude) == (12.5, 77.25)
    assert position.captured_at.year == 2026


@pytest.mark.unit
@pytest.mark.anyio
async def test_get_position_null_is_none() -> None:
    async with _client(lambda r: httpx.Response(200, content=b"null")) as client:
        assert await client.get_position("bus-1") is None


@pytest.mark.unit
@pytest.mark.anyio
async def test_error_status_carries_server_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"detail": "Forbidden - insufficient permissions"})

    async with _client(handler) as client:
        with pytest.raises(TrackingApiError) as info:
            await client.post_location(latitude=1.0, longitude=2.0)

    assert info.value.status_code == 403
    assert info.value.detail == "Forbidden - insufficient permissions"


@pytest.mark.unit
@pytest.mark.anyio
async def test_stream_events_parses_sse_and_skips_keepalives() -> None:
    body = (
        'event: joined\ndata: {"type": "joined", "unit_id": "bus-1"}\n\n'
        ": keepalive\n\n"
        f"event: location-update\ndata: {json.dumps({'type': 'location-update', **POSITION})}\n\n"
        'event: tracking-reset\ndata: {"type": "tracking-reset"}\n\n'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/bus/bus-1/stream"
        return httpx.Response(
            200, text=body, headers={"content-type": "text/event-stream"}
        )

    received = []
    async with _client(handler) as client:
        with pytest.raises(TransportClosed):
            async for message in client.stream_events("bus-1"):
                received.append(message)

    assert [m["type"] for m in received] == ["joined", "location-update", "tracking-reset"]
    assert received[1]["latitude"] == 12.5


@pytest.mark.unit
@pytest.mark.anyio
async def test_stream_events_rejected_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "Bus not found"})

    async with _client(handler) as client:
        with pytest.raises(TrackingApiError) as info:
            async for _ in client.stream_events("bus-404"):
                pass

    assert info.value.status_code == 404


@pytest.mark.unit
@pytest.mark.anyio
async def test_connection_failure_is_transport_closed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(TransportClosed):
            async for _ in client.stream_events("bus-1"):
                pass


@dataclass(slots=True)
class FakeFleetDirectory:
    def find_unit_by_driver(self, driver_id: str) -> TrackedUnit | None:
        return TrackedUnit(unit_id="bus-1", driver_id=driver_id)

    def get_unit(self, unit_id: str) -> TrackedUnit | None:
        return TrackedUnit(unit_id=unit_id) if unit_id == "bus-1" else None

    def list_units(self, *, available_only: bool = False) -> tuple[TrackedUnit, ...]:
        return (TrackedUnit(unit_id="bus-1"),)


@pytest.mark.unit
@pytest.mark.anyio
async def test_round_trip_against_app() -> None:
    container = build_container(
        TrackingSettings(jwt_secret="s", reset_enabled=False),
        fleet_directory=FakeFleetDirectory(),
        position_store=InMemoryPositionStore(),
    )
    transport = httpx.ASGITransport(app=create_app(container))

    driver = HttpTrackingClient(
        base_url="http://test",
        token=issue_token("driver-1", "driver", secret="s"),
        transport=transport,
    )
    viewer = HttpTrackingClient(
        base_url="http://test",
        token=issue_token("student-1", "student", secret="s"),
        transport=transport,
    )
    async with driver, viewer:
        sent = await driver.post_location(latitude=12.9, longitude=77.6)
        got = await viewer.get_position("bus-1")
        progress = await viewer.get_progress("bus-1")

    assert got == sent
    assert progress["unit_id"] == "bus-1"
    assert progress["started"] is True


@pytest.mark.unit
@pytest.mark.anyio
async def test_post_location_discarded_fix_is_none() -> None:
    async with _client(lambda r: httpx.Response(200, content=b"null")) as client:
        assert await client.post_location(latitude=1.0, longitude=2.0) is None
