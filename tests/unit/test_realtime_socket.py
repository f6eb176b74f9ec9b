from __future__ import annotations

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from src.adapters.api.auth import issue_token
from src.adapters.api.dependencies import build_container
from src.adapters.persistence.in_memory_position_store import InMemoryPositionStore
from src.adapters.settings import TrackingSettings
from src.domain.models import TrackedUnit
from src.main import create_app

SECRET = "test-secret"


@dataclass(slots=True)
class FakeFleetDirectory:
    units: tuple[TrackedUnit, ...]

    def find_unit_by_driver(self, driver_id: str) -> TrackedUnit | None:
        return next((u for u in self.units if u.driver_id == driver_id), None)

    def get_unit(self, unit_id: str) -> TrackedUnit | None:
        return next((u for u in self.units if u.unit_id == unit_id), None)

    def list_units(self, *, available_only: bool = False) -> tuple[TrackedUnit, ...]:
        return self.units


FLEET = FakeFleetDirectory(
    units=(
        TrackedUnit(unit_id="bus-1", driver_id="driver-1"),
        TrackedUnit(unit_id="bus-2", driver_id="driver-2"),
    )
)


def _token(user_id: str, role: str) -> str:
    return issue_token(user_id, role, secret=SECRET)


@pytest.fixture()
def container():
    return build_container(
        TrackingSettings(jwt_secret=SECRET, reset_enabled=False),
        fleet_directory=FLEET,
        position_store=InMemoryPositionStore(),
    )


@pytest.mark.unit
def test_joined_viewer_gets_only_its_units_updates(container) -> None:
    with TestClient(create_app(container)) as client:
        with client.websocket_connect(f"/ws?token={_token('s1', 'student')}") as ws:
            ws.send_json({"type": "join", "unit_id": "bus-1"})
            assert ws.receive_json() == {"type": "joined", "unit_id": "bus-1"}

            for driver in ("driver-2", "driver-1"):
                resp = client.post(
                    "/bus/location",
                    json={"latitude": 1.25, "longitude": 2.5},
                    headers={"Authorization": f"Bearer {_token(driver, 'driver')}"},
                )
                assert resp.status_code == 200

            event = ws.receive_json()
            assert event["type"] == "location-update"
            assert event["unit_id"] == "bus-1"
            assert (event["latitude"], event["longitude"]) == (1.25, 2.5)


@pytest.mark.unit
def test_reset_reaches_every_connection(container) -> None:
    token = _token("s1", "student")
    with TestClient(create_app(container)) as client:
        with client.websocket_connect(f"/ws?token={token}") as joined:
            with client.websocket_connect(f"/ws?token={token}") as idle:
                joined.send_json({"type": "join", "unit_id": "bus-1"})
                assert joined.receive_json()["type"] == "joined"

                assert client.portal.call(container.scheduler.fire) is True

                for ws in (joined, idle):
                    event = ws.receive_json()
                    assert event["type"] == "tracking-reset"
                    assert event["message"]


@pytest.mark.unit
def test_leave_and_malformed_messages(container) -> None:
    with TestClient(create_app(container)) as client:
        with client.websocket_connect(f"/ws?token={_token('s1', 'student')}") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "join"})
            assert ws.receive_json() == {"type": "error", "detail": "unit_id is required"}

            ws.send_json({"type": "dance", "unit_id": "bus-1"})
            assert ws.receive_json()["type"] == "error"

            ws.send_json({"type": "join", "unit_id": "bus-1"})
            assert ws.receive_json()["type"] == "joined"
            ws.send_json({"type": "leave", "unit_id": "bus-1"})
            assert ws.receive_json() == {"type": "left", "unit_id": "bus-1"}

            assert container.channel.subscriber_count("bus-1") == 0


@pytest.mark.unit
def test_invalid_token_is_refused(container) -> None:
    with TestClient(create_app(container)) as client:
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws?token=garbage") as ws:
                ws.receive_json()
