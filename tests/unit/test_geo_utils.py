from __future__ import annotations

import pytest

from src.domain.algorithms.geo_utils import (
    haversine_distance_km,
    haversine_distance_m,
    is_valid_coordinate,
)
from src.domain.models.geo import GeoPoint


def test_haversine_zero_for_identical_points() -> None:
    p = GeoPoint(lat=12.97, lon=77.59)
    assert haversine_distance_m(p, p) == 0.0


def test_haversine_is_symmetric_and_reasonable_scale() -> None:
    # Rough sanity check: 1 degree of latitude is about 111km.
    a = GeoPoint(lat=0.0, lon=0.0)
    b = GeoPoint(lat=1.0, lon=0.0)

    d1 = haversine_distance_m(a, b)
    d2 = haversine_distance_m(b, a)

    assert abs(d1 - d2) < 1e-6
    assert 100_000.0 < d1 < 120_000.0
    assert haversine_distance_km(a, b) == pytest.approx(d1 / 1000.0)


@pytest.mark.parametrize(
    ("lat", "lon", "ok"),
    [
        (0.0, 0.0, True),
        (90.0, 180.0, True),
        (-90.0, -180.0, True),
        (90.5, 0.0, False),
        (0.0, -181.0, False),
        (float("nan"), 0.0, False),
        (0.0, float("-inf"), False),
    ],
)
def test_is_valid_coordinate(lat: float, lon: float, ok: bool) -> None:
    assert is_valid_coordinate(lat, lon) is ok
