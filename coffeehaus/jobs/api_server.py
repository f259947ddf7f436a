"""HTTP entrypoint exposing coffee shop search and discovery (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from coffeehaus.core.config import ConfigError, get_settings
from coffeehaus.core.search import SEARCH_FAILED_MESSAGE, InputError, SearchOrchestrator, build_orchestrator
from coffeehaus.models import Coordinate, SearchFilters
from coffeehaus.vendors.serp_places import PlacesError

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = Flask(__name__)

DISCOVERY_DEFAULT_RADIUS = 5000


@lru_cache(maxsize=1)
def _get_orchestrator() -> SearchOrchestrator:
    return build_orchestrator()


def _ok(data: Any, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def _fail(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def _float_arg(name: str) -> Optional[float]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise InputError(f"{name} must be numeric") from exc


def _int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InputError(f"{name} must be an integer") from exc


def _csv_arg(name: str) -> List[str]:
    raw = request.args.get(name) or ""
    return [part.strip() for part in raw.split(",") if part.strip()]


def _center_arg() -> Optional[Coordinate]:
    lat = _float_arg("lat")
    lng = _float_arg("lng")
    if lat is None or lng is None:
        return None
    return Coordinate(lat, lng)


def _radius_payload(payload: Dict[str, Any]) -> float:
    raw = payload.get("radius")
    return float(DISCOVERY_DEFAULT_RADIUS if raw is None else raw)


def _discovery_payload(result) -> Dict[str, Any]:
    data = result.to_dict()
    data["message"] = f"Discovery completed: {result.added} added, {result.updated} updated"
    return data


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "port_config": settings.port,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.get("/api/coffee-shops")
def search_shops() -> Any:
    try:
        filters = SearchFilters(
            query=request.args.get("query", ""),
            center=_center_arg(),
            location_text=request.args.get("location_string") or None,
            radius_meters=_float_arg("radius"),
            min_rating=_float_arg("min_rating"),
            max_rating=_float_arg("max_rating"),
            price_levels=[int(level) for level in _csv_arg("price_level") if level.isdigit()],
            categories=_csv_arg("categories"),
            limit=_int_arg("limit", 20),
            offset=_int_arg("offset", 0),
        )
    except InputError as exc:
        return _fail(str(exc), 400)

    try:
        orchestrator = _get_orchestrator()
    except ConfigError as exc:
        logger.error("Coffee shop search is not configured: %s", exc)
        return _fail(SEARCH_FAILED_MESSAGE, 500)

    result = orchestrator.search(filters)
    if not result.success:
        status = 500 if result.error == SEARCH_FAILED_MESSAGE else 400
        return _fail(result.error or SEARCH_FAILED_MESSAGE, status)
    return _ok(result.to_dict())


@app.get("/api/coffee-shops/<shop_id>")
def get_shop(shop_id: str) -> Any:
    try:
        shop = _get_orchestrator().get_shop(shop_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Coffee shop fetch failed for %s: %s", shop_id, exc)
        return _fail("Failed to fetch coffee shop", 500)
    if shop is None:
        return _fail("Coffee shop not found", 404)
    return _ok(shop.to_dict())


@app.post("/api/coffee-shops/discover")
def discover() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    location = payload.get("location") or None
    center = None
    if isinstance(location, dict):
        try:
            center = Coordinate(float(location["lat"]), float(location["lng"]))
        except (KeyError, TypeError, ValueError):
            return _fail("location must contain numeric lat and lng", 400)

    try:
        result = _get_orchestrator().discover(
            str(payload.get("query") or ""),
            center,
            _radius_payload(payload),
        )
    except (InputError, ValueError) as exc:
        return _fail(str(exc), 400)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Coffee shop discovery failed: %s", exc)
        return _fail("Failed to discover coffee shops", 500)
    return _ok(_discovery_payload(result))


@app.post("/api/coffee-shops/discover-by-location")
def discover_by_location() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        result = _get_orchestrator().discover_by_location(
            str(payload.get("query") or ""),
            payload.get("location") or None,
            _radius_payload(payload),
        )
    except (InputError, ValueError) as exc:
        return _fail(str(exc), 400)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Coffee shop discovery by location failed: %s", exc)
        return _fail("Failed to discover coffee shops", 500)

    data = _discovery_payload(result)
    data["geocoded_location"] = data["location"]
    return _ok(data)


@app.post("/api/coffee-shops/<shop_id>/refresh")
def refresh_shop(shop_id: str) -> Any:
    try:
        shop = _get_orchestrator().refresh_shop(shop_id)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Coffee shop refresh failed for %s: %s", shop_id, exc)
        return _fail("Failed to refresh coffee shop data", 500)
    if shop is None:
        return _fail("Coffee shop not found", 404)
    return _ok(shop.to_dict())


@app.get("/api/coffee-shops/autocomplete/search")
def autocomplete() -> Any:
    try:
        orchestrator = _get_orchestrator()
        limit = _int_arg("limit", 10)
        try:
            center = orchestrator.resolve_location(_center_arg(), request.args.get("location"))
        except PlacesError as exc:
            logger.warning("Autocomplete geocoding failed, continuing without a center: %s", exc)
            center = None
        suggestions = orchestrator.autocomplete(request.args.get("query", ""), limit, center)
    except InputError as exc:
        return _fail(str(exc), 400)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Autocomplete failed: %s", exc)
        return _fail("Failed to get autocomplete suggestions", 500)
    return _ok(suggestions)


def main() -> None:
    port = get_settings().port
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
