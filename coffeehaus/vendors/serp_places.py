"""SerpAPI Google Maps client returning normalized Shop records.

Every method issues exactly one bounded request (no retries); SerpAPI bills
per request, so callers decide when a lookup is worth making.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

import requests
from serpapi import GoogleSearch

from coffeehaus.core.config import ConfigError
from coffeehaus.core.geo import zoom_for_radius
from coffeehaus.etl import transform
from coffeehaus.models import Coordinate, RejectedPlace, Shop

logger = logging.getLogger(__name__)

QUERY_SUFFIX = "coffee shop"
NO_RESULTS_MARKER = "hasn't returned any results"


class PlacesError(RuntimeError):
    """Raised when SerpAPI reports an error or cannot be reached."""


def build_serpapi_params(api_key: str, **extra: Any) -> Dict[str, Any]:
    """Construct SerpAPI request parameters for the Google Maps engine."""
    params: Dict[str, Any] = {"engine": "google_maps", "api_key": api_key, "type": "search"}
    params.update({key: value for key, value in extra.items() if value is not None})
    return params


class SerpPlacesClient:
    """Thin typed wrapper over SerpAPI's google_maps engine."""

    def __init__(self, api_key: str, timeout: float = 10.0) -> None:
        if not api_key:
            raise ConfigError("SERPAPI_API_KEY must be set to query SerpAPI.")
        self._api_key = api_key
        self._timeout = timeout

    def _fetch(self, params: Dict[str, Any]) -> Dict[str, Any]:
        search = GoogleSearch(params)
        search.timeout = self._timeout
        try:
            data = search.get_dict()
        except (requests.RequestException, ValueError) as exc:
            logger.error("SerpAPI request failed: %s", exc)
            raise PlacesError(f"SerpAPI request failed: {exc}") from exc
        if not data:
            raise PlacesError("SerpAPI returned an empty payload.")
        if "error" in data:
            if NO_RESULTS_MARKER in str(data["error"]):
                # SerpAPI's equivalent of ZERO_RESULTS.
                return {}
            logger.error("SerpAPI returned an error: %s", data["error"])
            raise PlacesError(f"SerpAPI returned an error response: {data['error']}")
        return data

    def search_places(
        self, query: str, center: Optional[Coordinate] = None, radius_meters: float = 5000
    ) -> List[Union[Shop, RejectedPlace]]:
        """Search coffee places for ``query`` around ``center``; the id field is never set.

        Results that fail Shop validation come back as ``RejectedPlace`` so the
        caller can report them per item.
        """
        ll = None
        if center is not None:
            ll = f"@{center.latitude},{center.longitude},{zoom_for_radius(radius_meters)}z"
        params = build_serpapi_params(self._api_key, q=f"{query.strip()} {QUERY_SUFFIX}", ll=ll)

        logger.info("Calling SerpAPI places search for query=%s ll=%s", query, ll)
        data = self._fetch(params)

        places: List[Union[Shop, RejectedPlace]] = []
        for raw in transform.extract_local_results(data):
            try:
                shop = transform.to_shop(raw)
            except ValueError as exc:
                name = str(raw.get("title") or raw.get("name") or "unknown place")
                places.append(RejectedPlace(name=name, reason=str(exc)))
                continue
            if shop is not None:
                places.append(shop)

        logger.info("Parsed %s coffee places from SerpAPI response.", len(places))
        return places

    def place_details(self, external_id: str) -> Optional[Shop]:
        params = build_serpapi_params(self._api_key, place_id=external_id, type="place")
        logger.info("Calling SerpAPI place details for place_id=%s", external_id)
        data = self._fetch(params)

        place = data.get("place_results")
        if not isinstance(place, dict):
            return None
        place.setdefault("place_id", external_id)
        try:
            return transform.details_to_shop(place)
        except ValueError as exc:
            raise PlacesError(f"SerpAPI returned malformed details for {external_id}: {exc}") from exc

    def geocode(self, text: str) -> Optional[Coordinate]:
        """Resolve free text like "Austin, TX" to a coordinate, or ``None`` when nothing matches."""
        params = build_serpapi_params(self._api_key, q=text.strip())
        logger.info("Geocoding location=%s via SerpAPI", text)
        data = self._fetch(params)

        place = data.get("place_results")
        if isinstance(place, dict):
            point = transform.extract_coordinate(place)
            if point is not None:
                return point

        for item in transform.extract_local_results(data):
            point = transform.extract_coordinate(item)
            if point is not None:
                return point
        return None
