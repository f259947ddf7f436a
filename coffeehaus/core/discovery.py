"""Discovery: pull places from the provider and fold them into the store."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from coffeehaus.core.location import GeocodeText, LocationResolver
from coffeehaus.models import Coordinate, DiscoveryResult, RejectedPlace, Shop

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("name", "address", "city", "state", "zip_code", "country", "phone", "website", "email")
_OPTIONAL_FIELDS = ("rating", "price_level", "hours", "external_id")


def _union(existing: List[str], incoming: List[str]) -> List[str]:
    merged = list(existing)
    for item in incoming:
        if item not in merged:
            merged.append(item)
    return merged


def merge_shops(existing: Shop, incoming: Shop) -> Shop:
    """Reconcile a stored shop with fresh provider data.

    Incoming values win only when present; review counts keep the maximum;
    categories and photos are unioned. Identity and creation time stay with
    the existing record.
    """
    changes = {}
    for name in _TEXT_FIELDS:
        changes[name] = getattr(incoming, name) or getattr(existing, name)
    for name in _OPTIONAL_FIELDS:
        value = getattr(incoming, name)
        changes[name] = value if value is not None else getattr(existing, name)

    # Coordinates move as a pair.
    point = incoming.coordinate or existing.coordinate
    changes["latitude"] = point.latitude if point else None
    changes["longitude"] = point.longitude if point else None

    changes["review_count"] = max(existing.review_count, incoming.review_count)
    changes["categories"] = _union(existing.categories, incoming.categories)
    changes["photos"] = _union(existing.photos, incoming.photos)
    return replace(existing, **changes)


class DiscoveryEngine:
    """Backfills the shop store from the places provider.

    Candidates are processed one at a time; a failing candidate is recorded
    and skipped, never aborting the batch.
    """

    def __init__(self, places, repository, now: Optional[Callable[[], datetime]] = None) -> None:
        self._places = places
        self._repository = repository
        self._now = now or (lambda: datetime.now(timezone.utc))

    def discover(self, query: str, center: Optional[Coordinate] = None, radius_meters: float = 5000) -> DiscoveryResult:
        result = DiscoveryResult()
        try:
            candidates = self._places.search_places(query, center, radius_meters)
        except Exception as exc:  # noqa: BLE001
            logger.error("Discovery search failed for query=%s: %s", query, exc)
            result.errors.append(f"Discovery service error: {exc}")
            return result

        for candidate in candidates:
            if isinstance(candidate, RejectedPlace):
                logger.warning("Error processing %s: %s", candidate.name, candidate.reason)
                result.errors.append(f"Error processing {candidate.name}: {candidate.reason}")
                continue
            try:
                self._store_candidate(candidate, result)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Error processing %s: %s", candidate.name, exc)
                result.errors.append(f"Error processing {candidate.name}: {exc}")

        logger.info(
            "Discovery for query=%s finished: added=%d updated=%d errors=%d",
            query,
            result.added,
            result.updated,
            len(result.errors),
        )
        return result

    def _store_candidate(self, candidate: Shop, result: DiscoveryResult) -> None:
        existing = None
        if candidate.external_id:
            existing = self._repository.by_external_id(candidate.external_id)

        if existing is not None:
            merged = merge_shops(existing, candidate)
            self._repository.upsert(replace(merged, last_synced_at=self._now()))
            result.updated += 1
        else:
            self._repository.upsert(replace(candidate, id=None, last_synced_at=self._now()))
            result.added += 1

    def discover_from(self, query: str, location: Optional[LocationResolver], radius_meters: float = 5000) -> DiscoveryResult:
        """Discover around a resolver's center; an unresolvable location stops before any search."""
        if location is None:
            return self.discover(query, None, radius_meters)

        try:
            center = location.resolve()
        except Exception as exc:  # noqa: BLE001
            logger.error("Geocoding failed for location=%s: %s", location.describe(), exc)
            return DiscoveryResult(errors=[f"Discovery error: {exc}"])
        if center is None:
            return DiscoveryResult(errors=[f"Could not find coordinates for location: {location.describe()}"])

        result = self.discover(query, center, radius_meters)
        result.location = center
        return result

    def discover_by_location_string(
        self, query: str, location_text: Optional[str] = None, radius_meters: float = 5000
    ) -> DiscoveryResult:
        location = GeocodeText(self._places, location_text) if location_text else None
        return self.discover_from(query, location, radius_meters)

    def refresh(self, shop_id: str) -> Optional[Shop]:
        """Re-fetch provider details for a stored shop and merge them in.

        Returns ``None`` only when ``shop_id`` is unknown; shops without an
        external id, or unknown to the provider, come back unchanged.
        """
        existing = self._repository.by_id(shop_id)
        if existing is None:
            return None
        if not existing.external_id:
            return existing

        details = self._places.place_details(existing.external_id)
        if details is None:
            logger.info("Provider has no details for place_id=%s", existing.external_id)
            return existing

        merged = merge_shops(existing, details)
        return self._repository.upsert(replace(merged, last_synced_at=self._now()))
