from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

import httpx

from src.app.ports.output import ITrackingApi, TrackingApiError, TransportClosed
from src.domain.models import CurrentPosition


def _position_from_payload(data: Mapping[str, Any] | None) -> CurrentPosition | None:
    if not data:
        return None
    if data.get("latitude") is None or data.get("longitude") is None:
        return None
    return CurrentPosition(
        latitude=float(data["latitude"]),
        longitude=float(data["longitude"]),
        captured_at=datetime.fromisoformat(str(data["timestamp"])),
    )


@dataclass(slots=True)
class HttpTrackingClient(ITrackingApi):
    """Talks to the tracking server over HTTP.

    Env vars:
      - TRACKING_API_URL: server base URL (default http://localhost:8000)
      - TRACKING_TOKEN: bearer token
      - TRACKING_HTTP_TIMEOUT_S: request timeout (default 10)

    `transport` allows in-process use (e.g. httpx.ASGITransport in tests).
    """

    base_url: str | None = None
    token: str | None = None
    timeout_s: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.base_url is None:
            self.base_url = os.getenv("TRACKING_API_URL", "http://localhost:8000")
        if self.token is None:
            self.token = os.getenv("TRACKING_TOKEN")
        if os.getenv("TRACKING_HTTP_TIMEOUT_S"):
            self.timeout_s = float(os.environ["TRACKING_HTTP_TIMEOUT_S"])

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url or "",
                headers=self._headers(),
                timeout=self.timeout_s,
                transport=self.transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpTrackingClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            detail = str(resp.json().get("detail"))
        except (ValueError, AttributeError):
            detail = resp.text
        raise TrackingApiError(resp.status_code, detail)

    async def get_position(self, unit_id: str) -> CurrentPosition | None:
        resp = await self._http().get(f"/bus/{unit_id}/location")
        self._raise_for_status(resp)
        return _position_from_payload(resp.json())

    async def post_location(
        self, *, latitude: float, longitude: float
    ) -> CurrentPosition | None:
        resp = await self._http().post(
            "/bus/location", json={"latitude": latitude, "longitude": longitude}
        )
        self._raise_for_status(resp)
        return _position_from_payload(resp.json())

    async def get_progress(self, unit_id: str) -> dict[str, Any]:
        resp = await self._http().get(f"/bus/{unit_id}/progress")
        self._raise_for_status(resp)
        return resp.json()

    async def stream_events(self, unit_id: str) -> AsyncIterator[Mapping[str, Any]]:
        """Follow the unit's server-sent event stream.

        Only `data:` lines are decoded; comments (keepalives) are skipped.
        """

        # No read timeout: the stream is long-lived and idles between keepalives.
        timeout = httpx.Timeout(self.timeout_s, read=None)
        try:
            async with self._http().stream(
                "GET", f"/bus/{unit_id}/stream", timeout=timeout
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    self._raise_for_status(resp)
                data_lines: list[str] = []
                async for line in resp.aiter_lines():
                    if line.startswith("data:"):
                        data_lines.append(line[5:].strip())
                        continue
                    if line == "" and data_lines:
                        raw = "\n".join(data_lines)
                        data_lines = []
                        try:
                            yield json.loads(raw)
                        except json.JSONDecodeError:
                            continue
        except httpx.HTTPError as exc:
            raise TransportClosed(str(exc)) from exc
        raise TransportClosed("stream closed by server")
