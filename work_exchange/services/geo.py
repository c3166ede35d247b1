"""
Расстояния между точками на сфере (haversine).

Используется в двух направлениях: заказы рядом с исполнителем
и исполнители рядом с заказом.
"""
from __future__ import annotations

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0

Point = tuple[Optional[float], Optional[float]]


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two lat/lng points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # min() защищает asin от 1.0000000000000002 из-за погрешности float
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def has_coordinates(point: Point) -> bool:
    lat, lng = point
    return lat is not None and lng is not None


def distance_km(origin: Point, point: Point) -> Optional[float]:
    """Distance between two points or None when either side has no coordinates."""
    if not has_coordinates(origin) or not has_coordinates(point):
        return None
    return haversine_km(float(origin[0]), float(origin[1]), float(point[0]), float(point[1]))


def within_radius(origin: Point, point: Point, radius_km: float) -> bool:
    """Inclusive radius check (d <= radius).

    Если у одной из сторон нет координат, гео-фильтр пропускается
    и пара считается подходящей.
    """
    distance = distance_km(origin, point)
    if distance is None:
        return True
    return distance <= radius_km
