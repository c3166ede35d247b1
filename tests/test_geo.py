"""
Тесты haversine и проверки радиуса.
"""
import pytest

from work_exchange.services.geo import distance_km, haversine_km, has_coordinates, within_radius

TASHKENT = (41.3111, 69.2797)
# км на градус широты при R = 6371
KM_PER_DEG_LAT = 111.19492664455873


def north_of(point, km):
    return (point[0] + km / KM_PER_DEG_LAT, point[1])


def test_zero_distance():
    assert haversine_km(*TASHKENT, *TASHKENT) == 0.0


def test_distance_along_meridian():
    assert haversine_km(*TASHKENT, *north_of(TASHKENT, 8)) == pytest.approx(8.0, abs=1e-6)
    assert haversine_km(*TASHKENT, *north_of(TASHKENT, 12)) == pytest.approx(12.0, abs=1e-6)


def test_distance_is_symmetric():
    other = (41.2995, 69.2401)
    assert haversine_km(*TASHKENT, *other) == pytest.approx(haversine_km(*other, *TASHKENT))


def test_known_city_distance():
    """Ташкент - Самарканд около 270 км по прямой."""
    samarkand = (39.6542, 66.9597)
    assert 260 < haversine_km(*TASHKENT, *samarkand) < 280


def test_within_radius_near_and_far():
    assert within_radius(TASHKENT, north_of(TASHKENT, 8), 10)
    assert not within_radius(TASHKENT, north_of(TASHKENT, 12), 10)


def test_radius_boundary_is_inclusive():
    point = north_of(TASHKENT, 5)
    d = distance_km(TASHKENT, point)
    assert within_radius(TASHKENT, point, d)
    assert not within_radius(TASHKENT, point, d - 1e-9)


def test_missing_coordinates_skip_geo_filter():
    assert distance_km(TASHKENT, (None, None)) is None
    assert distance_km((41.0, None), TASHKENT) is None
    assert within_radius((None, None), TASHKENT, 1)
    assert within_radius(TASHKENT, (None, 69.0), 1)


def test_has_coordinates():
    assert has_coordinates(TASHKENT)
    assert has_coordinates((0.0, 0.0))
    assert not has_coordinates((None, 0.0))
