import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Ensure `coffeehaus` is importable when running pytest from the repository root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coffeehaus.core.db import PersistenceError  # noqa: E402
from coffeehaus.core.geo import rank_within_radius  # noqa: E402
from coffeehaus.core.search import matches_text  # noqa: E402
from coffeehaus.models import Shop  # noqa: E402


class InMemoryShopRepository:
    """Dict-backed stand-in for ShopRepository using local haversine distances."""

    def __init__(self):
        self.shops = {}
        self.upserts = []
        self.failing_names = set()
        self._next_id = 1

    def seed(self, *shops):
        for shop in shops:
            self.upsert(shop)
        self.upserts.clear()

    def by_id(self, shop_id):
        return self.shops.get(shop_id)

    def by_external_id(self, external_id):
        for shop in self.shops.values():
            if shop.external_id == external_id:
                return shop
        return None

    def upsert(self, shop):
        if shop.name in self.failing_names:
            raise PersistenceError(f"constraint violated for {shop.name}")
        shop_id = shop.id
        if shop_id is None and shop.external_id:
            existing = self.by_external_id(shop.external_id)
            shop_id = existing.id if existing else None
        if shop_id is None:
            shop_id = f"shop-{self._next_id}"
            self._next_id += 1
        stored = replace(shop, id=shop_id)
        self.shops[shop_id] = stored
        self.upserts.append(stored)
        return stored

    def text_search(self, filters):
        matches = [shop for shop in self.shops.values() if matches_text(shop, filters.query)]
        total = len(matches)
        if filters.limit is not None:
            matches = matches[filters.offset : filters.offset + filters.limit]
        return matches, total

    def count_within_radius(self, center, radius_meters):
        return len(rank_within_radius(self.shops.values(), center, radius_meters))

    def find_within_radius(self, center, radius_meters, limit):
        return rank_within_radius(self.shops.values(), center, radius_meters)[:limit]

    def find_named_within_radius(self, name, center, radius_meters):
        needle = name.strip().lower()
        ranked = rank_within_radius(self.shops.values(), center, radius_meters)
        return [item for item in ranked if needle in item.shop.name.lower()]


class FakePlaces:
    """Records provider calls and replays canned results."""

    def __init__(self):
        self.results = []
        self.search_calls = []
        self.search_error = None
        self.geocodes = {}
        self.geocode_calls = []
        self.details = {}
        self.details_calls = []

    def search_places(self, query, center=None, radius_meters=5000):
        self.search_calls.append((query, center, radius_meters))
        if self.search_error is not None:
            raise self.search_error
        return [replace(shop) for shop in self.results]

    def geocode(self, text):
        self.geocode_calls.append(text)
        return self.geocodes.get(text)

    def place_details(self, external_id):
        self.details_calls.append(external_id)
        return self.details.get(external_id)


class FakeClassifier:
    def __init__(self, intent="general"):
        self.intent = intent
        self.calls = []

    def classify_cached(self, query):
        self.calls.append(query)
        return self.intent


@pytest.fixture
def repository():
    return InMemoryShopRepository()


@pytest.fixture
def places():
    return FakePlaces()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def make_shop():
    def factory(name, lat=None, lng=None, **kwargs):
        return Shop(name=name, latitude=lat, longitude=lng, **kwargs)

    return factory
