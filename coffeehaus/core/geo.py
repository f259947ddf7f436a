"""Great-circle distance helpers for the in-process ranking path."""

import math
from typing import Iterable, List

from coffeehaus.models import Coordinate, RankedShop, Shop

EARTH_RADIUS_KM = 6371.0
# SerpAPI viewport zoom bounds for the google_maps engine.
MIN_ZOOM = 3
MAX_ZOOM = 21
_METERS_PER_PIXEL_AT_ZOOM_0 = 156543.03
_VIEWPORT_PIXELS = 1024


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Distance between two points in kilometers using the haversine formula."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    return haversine_km(a, b) * 1000


def rank_within_radius(shops: Iterable[Shop], center: Coordinate, radius_meters: float) -> List[RankedShop]:
    """Attach local distances, keep shops inside the radius and sort nearest first.

    Shops without coordinates cannot be placed and are skipped.
    """
    ranked = []
    for shop in shops:
        point = shop.coordinate
        if point is None:
            continue
        distance = haversine_m(center, point)
        if distance <= radius_meters:
            ranked.append(RankedShop(shop=shop, distance_m=distance))
    ranked.sort(key=lambda item: item.distance_m)
    return ranked


def zoom_for_radius(radius_meters: float) -> int:
    """Pick a map zoom whose viewport roughly spans ``radius_meters`` around the center."""
    if radius_meters <= 0:
        return MAX_ZOOM
    zoom = math.log2(_METERS_PER_PIXEL_AT_ZOOM_0 * _VIEWPORT_PIXELS / (2 * radius_meters))
    return max(MIN_ZOOM, min(MAX_ZOOM, int(round(zoom))))
