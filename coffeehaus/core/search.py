"""Search orchestration: resolve a center, classify intent, backfill, rank and page."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from coffeehaus.core import geo
from coffeehaus.core.config import get_settings
from coffeehaus.core.db import PersistenceError, ShopRepository
from coffeehaus.core.discovery import DiscoveryEngine
from coffeehaus.core.intent import SPECIFIC, IntentClassifier, build_classifier
from coffeehaus.core.location import DirectCoordinates, GeocodeText, LocationResolver
from coffeehaus.models import Coordinate, RankedShop, SearchFilters, SearchResult, Shop
from coffeehaus.vendors.serp_places import PlacesError, SerpPlacesClient

logger = logging.getLogger(__name__)

SPECIFIC_SHOP = "specific_shop"
GENERAL_AREA = "general_area"
LEGACY_RADIUS = "legacy_radius"

DEFAULT_MIN_SHOPS = 10
DEFAULT_RADIUS_METERS = 50000
OVERFETCH_FACTOR = 2
AUTOCOMPLETE_MAX = 5
AUTOCOMPLETE_SCAN = 50
MIN_AUTOCOMPLETE_LENGTH = 2
DEFAULT_PAGE_SIZE = 20

SEARCH_FAILED_MESSAGE = "Failed to search coffee shops"
NO_LOCATION_MESSAGE = (
    "Location-based search requires query and either location_string or GPS coordinates (lat/lng)"
)


class InputError(ValueError):
    """Caller input that cannot be served; reported immediately, never retried."""


def paginate(items: Sequence[Any], offset: int, limit: int) -> Tuple[List[Any], bool]:
    """Slice one page; ``has_more`` is true when items remain past ``offset + limit``."""
    return list(items[offset : offset + limit]), len(items) > offset + limit


def matches_text(shop: Shop, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    return any(needle in (value or "").lower() for value in (shop.name, shop.address, shop.city))


def apply_filters(candidates: Sequence[RankedShop], filters: SearchFilters) -> List[RankedShop]:
    """Text match, rating bounds, category overlap, then price membership.

    A shop missing rating or price level is never excluded by that filter.
    """
    results = [item for item in candidates if matches_text(item.shop, filters.query)]

    if filters.min_rating is not None:
        results = [r for r in results if r.shop.rating is None or r.shop.rating >= filters.min_rating]
    if filters.max_rating is not None:
        results = [r for r in results if r.shop.rating is None or r.shop.rating <= filters.max_rating]
    if filters.categories:
        wanted = {c.lower() for c in filters.categories}
        results = [r for r in results if wanted & {c.lower() for c in r.shop.categories}]
    if filters.price_levels:
        levels = set(filters.price_levels)
        results = [r for r in results if r.shop.price_level is None or r.shop.price_level in levels]
    return results


class SearchOrchestrator:
    """Top-level entry point for search, discovery, refresh and autocomplete."""

    def __init__(
        self,
        places,
        repository,
        classifier: IntentClassifier,
        discovery: Optional[DiscoveryEngine] = None,
        min_shops: int = DEFAULT_MIN_SHOPS,
        default_radius: float = DEFAULT_RADIUS_METERS,
    ) -> None:
        self._places = places
        self._repository = repository
        self._classifier = classifier
        self._discovery = discovery or DiscoveryEngine(places, repository)
        self._min_shops = min_shops
        self._default_radius = default_radius

    # ---------- location ----------

    def location_for(self, center: Optional[Coordinate], location_text: Optional[str]) -> Optional[LocationResolver]:
        """Direct coordinates take priority over free text."""
        if center is not None:
            return DirectCoordinates(center, label=location_text)
        if location_text and location_text.strip():
            return GeocodeText(self._places, location_text.strip())
        return None

    def resolve_location(self, center: Optional[Coordinate], location_text: Optional[str]) -> Optional[Coordinate]:
        location = self.location_for(center, location_text)
        return location.resolve() if location is not None else None

    def _require_center(self, filters: SearchFilters) -> Coordinate:
        if not filters.query or not filters.query.strip():
            raise InputError(NO_LOCATION_MESSAGE)
        location = self.location_for(filters.center, filters.location_text)
        if location is None:
            raise InputError(NO_LOCATION_MESSAGE)
        center = location.resolve()
        if center is None:
            raise InputError("Could not determine location")
        return center

    def _page(self, filters: SearchFilters) -> Tuple[int, int]:
        limit = filters.limit if filters.limit is not None else DEFAULT_PAGE_SIZE
        if limit <= 0:
            raise InputError("limit must be positive")
        return limit, max(filters.offset, 0)

    def _radius(self, filters: SearchFilters) -> float:
        # Zero is a literal zero-meter radius, not "unbounded".
        return self._default_radius if filters.radius_meters is None else filters.radius_meters

    # ---------- search ----------

    def search(self, filters: SearchFilters) -> SearchResult:
        """Run a location-based search and always return an envelope.

        Failures come back as ``SearchResult.failure`` with a readable message,
        never as a partial success.
        """
        try:
            return self._search(filters)
        except InputError as exc:
            logger.info("Rejected search query=%s: %s", filters.query, exc)
            return SearchResult.failure(str(exc))
        except PlacesError as exc:
            logger.error("Location lookup failed for %s: %s", filters.location_text, exc)
            return SearchResult.failure("Could not determine location")
        except PersistenceError:
            logger.exception("Coffee shops search failed for query=%s", filters.query)
            return SearchResult.failure(SEARCH_FAILED_MESSAGE)

    def _search(self, filters: SearchFilters) -> SearchResult:
        limit, offset = self._page(filters)
        center = self._require_center(filters)
        query = filters.query.strip()
        radius = self._radius(filters)

        intent = self._classifier.classify_cached(query)
        backfill_location = DirectCoordinates(center, label=filters.location_text)

        if intent == SPECIFIC:
            matches = self._repository.find_named_within_radius(query, center, radius)
            if not matches:
                # One backfill attempt; a second empty answer is authoritative.
                self._backfill(query, backfill_location, radius)
                matches = self._repository.find_named_within_radius(query, center, radius)
            page, has_more = paginate(matches, offset, limit)
            return SearchResult(
                shops=page,
                total_count=len(matches),
                has_more=has_more,
                search_type=SPECIFIC_SHOP,
                detected_intent=intent,
            )

        existing = self._repository.count_within_radius(center, radius)
        if existing < self._min_shops:
            logger.info("Only %d shops within %sm of %s; running discovery", existing, radius, center)
            self._backfill(query, backfill_location, radius)

        # Over-fetch so in-memory filtering still leaves a full page.
        candidates = self._repository.find_within_radius(center, radius, OVERFETCH_FACTOR * (offset + limit))
        filtered = apply_filters(candidates, replace(filters, query=query))
        page, has_more = paginate(filtered, offset, limit)
        return SearchResult(
            shops=page,
            total_count=len(filtered),
            has_more=has_more,
            search_type=GENERAL_AREA,
            detected_intent=intent,
        )

    def _backfill(self, query: str, location: LocationResolver, radius: float) -> None:
        result = self._discovery.discover_from(query, location, radius)
        if result.errors:
            logger.warning("Discovery for query=%s reported %d errors: %s", query, len(result.errors), result.errors[:3])

    def legacy_search(self, filters: SearchFilters) -> SearchResult:
        """In-process haversine ranking over text-filtered store rows.

        Superseded by ``search`` but kept for stores without radius support;
        it shares the nearest-first ordering contract.
        """
        try:
            limit, offset = self._page(filters)
            center = self._require_center(filters)
            shops, _ = self._repository.text_search(replace(filters, limit=None, offset=0))
        except InputError as exc:
            return SearchResult.failure(str(exc))
        except PlacesError as exc:
            logger.error("Location lookup failed for %s: %s", filters.location_text, exc)
            return SearchResult.failure("Could not determine location")
        except PersistenceError:
            logger.exception("Legacy search failed for query=%s", filters.query)
            return SearchResult.failure(SEARCH_FAILED_MESSAGE)

        ranked = geo.rank_within_radius(shops, center, self._radius(filters))
        page, has_more = paginate(ranked, offset, limit)
        return SearchResult(
            shops=page,
            total_count=len(ranked),
            has_more=has_more,
            search_type=LEGACY_RADIUS,
        )

    # ---------- discovery & maintenance ----------

    def discover(self, query: str, center: Optional[Coordinate] = None, radius_meters: float = 5000):
        if not query or not query.strip():
            raise InputError("Query parameter is required")
        return self._discovery.discover(query.strip(), center, radius_meters)

    def discover_by_location(self, query: str, location_text: Optional[str] = None, radius_meters: float = 5000):
        if not query or not query.strip():
            raise InputError("Query parameter is required")
        return self._discovery.discover_by_location_string(query.strip(), location_text, radius_meters)

    def refresh_shop(self, shop_id: str) -> Optional[Shop]:
        return self._discovery.refresh(shop_id)

    def get_shop(self, shop_id: str) -> Optional[Shop]:
        return self._repository.by_id(shop_id)

    def autocomplete(self, query: str, limit: int = 10, center: Optional[Coordinate] = None) -> List[Dict[str, str]]:
        """Suggest nearby shops whose name, address or city contains ``query``."""
        if not query or len(query.strip()) < MIN_AUTOCOMPLETE_LENGTH:
            raise InputError("Query must be at least 2 characters")
        if center is None:
            return []

        cap = max(0, min(limit, AUTOCOMPLETE_MAX))
        nearest = self._repository.find_within_radius(center, self._default_radius, AUTOCOMPLETE_SCAN)
        suggestions = []
        for item in nearest:
            if len(suggestions) >= cap:
                break
            if matches_text(item.shop, query):
                shop = item.shop
                address = f"{shop.address}, {shop.city}" if shop.city else shop.address
                suggestions.append({"id": shop.id, "name": shop.name, "address": address})
        return suggestions


def build_orchestrator() -> SearchOrchestrator:
    """Wire the production collaborators from environment settings."""
    settings = get_settings()
    places = SerpPlacesClient(settings.serpapi_api_key, timeout=settings.provider_timeout)
    repository = ShopRepository()
    return SearchOrchestrator(
        places,
        repository,
        build_classifier(),
        min_shops=settings.min_shops_threshold,
        default_radius=settings.default_radius_meters,
    )
