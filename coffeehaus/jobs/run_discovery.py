"""CLI job to discover coffee shops around a location and persist them."""

import argparse
import logging
from typing import Optional

from coffeehaus.core.config import ConfigError, get_settings
from coffeehaus.core.db import ShopRepository, init_pool
from coffeehaus.core.discovery import DiscoveryEngine
from coffeehaus.models import Coordinate, DiscoveryResult
from coffeehaus.vendors.serp_places import SerpPlacesClient

logger = logging.getLogger(__name__)


def run_discovery_job(
    *,
    query: str,
    location: Optional[str],
    lat: Optional[float],
    lng: Optional[float],
    radius: float,
    init_schema: bool = False,
) -> DiscoveryResult:
    if not query or not query.strip():
        raise ValueError("Query parameters are empty")

    settings = get_settings()
    places = SerpPlacesClient(settings.serpapi_api_key, timeout=settings.provider_timeout)
    init_pool()
    repository = ShopRepository()
    if init_schema:
        repository.ensure_schema()

    engine = DiscoveryEngine(places, repository)
    logger.info("Running discovery for query=%s location=%s lat=%s lng=%s radius=%s", query, location, lat, lng, radius)

    if lat is not None and lng is not None:
        result = engine.discover(query, Coordinate(lat, lng), radius)
    else:
        result = engine.discover_by_location_string(query, location, radius)

    logger.info("Completed discovery: added=%d updated=%d", result.added, result.updated)
    for error in result.errors:
        logger.warning("Discovery error: %s", error)
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover coffee shops via SerpAPI and store them")
    parser.add_argument("query", help="Search text, e.g. 'espresso' or 'Blue Bottle'")
    parser.add_argument("--location", dest="location", help="Free-text location, e.g. 'Austin, TX'")
    parser.add_argument("--lat", dest="lat", type=float, help="Latitude of the search center")
    parser.add_argument("--lng", dest="lng", type=float, help="Longitude of the search center")
    parser.add_argument("--radius", dest="radius", type=float, default=5000, help="Search radius in meters")
    parser.add_argument(
        "--init-schema",
        dest="init_schema",
        action="store_true",
        help="Create the coffee_shops table before running",
    )
    return parser


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        run_discovery_job(
            query=args.query,
            location=args.location,
            lat=args.lat,
            lng=args.lng,
            radius=args.radius,
            init_schema=args.init_schema,
        )
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    main()
