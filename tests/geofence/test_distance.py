from __future__ import annotations

import math

import pytest

from geofence_attendance.core.constants import EARTH_RADIUS_M
from geofence_attendance.geofence.distance import haversine_m

POINTS = [
    (40.7128, -74.0060),
    (34.0522, -118.2437),
    (-33.8688, 151.2093),
    (51.5074, -0.1278),
    (0.0, 179.9999),
    (0.0, -179.9999),
    (89.9, 0.0),
]


@pytest.mark.parametrize("a", POINTS)
def test_distance_to_itself_is_zero(a):
    assert haversine_m(*a, *a) == 0.0


@pytest.mark.parametrize("a,b", [(POINTS[i], POINTS[j]) for i in range(len(POINTS)) for j in range(i + 1, len(POINTS))])
def test_distance_is_symmetric(a, b):
    assert haversine_m(*a, *b) == pytest.approx(haversine_m(*b, *a), abs=1e-6)


def test_one_degree_of_latitude():
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(EARTH_RADIUS_M * math.pi / 180, rel=1e-9)


def test_new_york_to_los_angeles():
    assert haversine_m(40.7128, -74.0060, 34.0522, -118.2437) == pytest.approx(3_936_000, rel=0.005)


def test_antimeridian_is_short_hop():
    # 0.0002 degrees of longitude at the equator, not half the planet.
    assert haversine_m(0.0, 179.9999, 0.0, -179.9999) < 30


@pytest.mark.parametrize(
    "a,b",
    [
        ((-82.0, -179.0), (82.0, 1.0)),
        ((-82.0, -172.0), (82.0, 8.0)),
        ((0.0, 0.0), (0.0, 180.0)),
        ((45.0, 90.0), (-45.0, -90.0)),
    ],
)
def test_antipodal_points_are_half_the_circumference(a, b):
    assert haversine_m(*a, *b) == pytest.approx(math.pi * EARTH_RADIUS_M, rel=1e-6)
