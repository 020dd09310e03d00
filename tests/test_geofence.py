"""
Tests del validador de geofence
"""
import pytest

from ms_visit.services.geofence import haversine_distance, within_radius

JOHANNESBURG = (-26.2041, 28.0473)


def test_same_point_is_inside():
    result = within_radius(JOHANNESBURG, JOHANNESBURG, 100)
    assert result.distance_meters == 0
    assert result.ok is True


def test_point_two_km_away_is_outside():
    # ~0.018 grados de latitud son ~2 km
    far = (JOHANNESBURG[0] + 0.018, JOHANNESBURG[1])
    result = within_radius(JOHANNESBURG, far, 100)
    assert result.ok is False
    assert result.distance_meters == pytest.approx(2001, rel=0.01)


def test_boundary_is_inclusive():
    near = (JOHANNESBURG[0] + 0.0005, JOHANNESBURG[1])
    distance = haversine_distance(JOHANNESBURG, near)
    assert within_radius(JOHANNESBURG, near, distance).ok is True
    assert within_radius(JOHANNESBURG, near, distance - 0.01).ok is False


def test_distance_is_symmetric():
    other = (-33.9249, 18.4241)
    assert haversine_distance(JOHANNESBURG, other) == pytest.approx(haversine_distance(other, JOHANNESBURG))
