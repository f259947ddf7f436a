import pytest

from coffeehaus.core import geo
from coffeehaus.models import Coordinate

SF = Coordinate(37.7749, -122.4194)
OAKLAND = Coordinate(37.8044, -122.2712)
AUSTIN = Coordinate(30.2672, -97.7431)


def test_haversine_identical_points_is_zero():
    assert geo.haversine_km(SF, SF) == 0
    assert geo.haversine_km(AUSTIN, AUSTIN) == 0


def test_haversine_is_symmetric():
    assert geo.haversine_km(SF, AUSTIN) == pytest.approx(geo.haversine_km(AUSTIN, SF))
    assert geo.haversine_m(SF, OAKLAND) == pytest.approx(geo.haversine_m(OAKLAND, SF))


def test_haversine_known_distance():
    # San Francisco to Oakland is roughly 13.4 km as the crow flies.
    assert geo.haversine_km(SF, OAKLAND) == pytest.approx(13.4, abs=0.3)


def test_rank_within_radius_filters_and_sorts(make_shop):
    near = make_shop("Near", 37.7750, -122.4195)
    mid = make_shop("Mid", 37.8044, -122.2712)
    far = make_shop("Far", 30.2672, -97.7431)
    nowhere = make_shop("Nowhere")

    ranked = geo.rank_within_radius([far, mid, nowhere, near], SF, 20000)

    assert [item.shop.name for item in ranked] == ["Near", "Mid"]
    assert ranked[0].distance_m < ranked[1].distance_m
    assert ranked[1].distance_km == pytest.approx(ranked[1].distance_m / 1000)


def test_rank_within_zero_radius_keeps_only_exact_matches(make_shop):
    exact = make_shop("Exact", SF.latitude, SF.longitude)
    near = make_shop("Near", 37.7750, -122.4195)

    ranked = geo.rank_within_radius([near, exact], SF, 0)

    assert [item.shop.name for item in ranked] == ["Exact"]


def test_zoom_for_radius_is_clamped():
    assert geo.zoom_for_radius(5000) == 14
    assert geo.zoom_for_radius(50000) == 11
    assert geo.zoom_for_radius(0) == geo.MAX_ZOOM
    assert geo.zoom_for_radius(10**9) == geo.MIN_ZOOM
