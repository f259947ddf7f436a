"""Database helpers and the PostGIS-backed shop repository."""

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from psycopg2 import extras, pool

from coffeehaus.core.config import get_settings
from coffeehaus.models import Coordinate, DayHours, RankedShop, SearchFilters, Shop

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.ThreadedConnectionPool] = None
_pool_lock = threading.Lock()


class PersistenceError(RuntimeError):
    """Raised when the store rejects or fails an operation."""


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.ThreadedConnectionPool:
    """Initialise and return the shared connection pool; safe to call from request threads."""
    global _connection_pool
    with _pool_lock:
        if _connection_pool is None:
            settings = get_settings()
            if not settings.database_url:
                raise RuntimeError("DATABASE_URL is required for database connections")
            _connection_pool = pool.ThreadedConnectionPool(
                minconn,
                maxconn,
                dsn=settings.database_url,
                connect_timeout=10,
            )
            logger.info("Database connection pool initialised")
        return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


_CREATE_SCHEMA = """
CREATE EXTENSION IF NOT EXISTS postgis;
CREATE EXTENSION IF NOT EXISTS pgcrypto;
CREATE TABLE IF NOT EXISTS coffee_shops (
    id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
    google_place_id text UNIQUE,
    name text NOT NULL,
    address text NOT NULL DEFAULT '',
    city text NOT NULL DEFAULT '',
    state text NOT NULL DEFAULT '',
    zip_code text NOT NULL DEFAULT '',
    country text NOT NULL DEFAULT 'US',
    latitude double precision,
    longitude double precision,
    location geography(Point, 4326),
    phone text,
    website text,
    email text,
    rating numeric(2, 1) CHECK (rating BETWEEN 0 AND 5),
    review_count integer NOT NULL DEFAULT 0 CHECK (review_count >= 0),
    price_level smallint CHECK (price_level BETWEEN 1 AND 4),
    hours jsonb,
    categories text[] NOT NULL DEFAULT '{}',
    photos text[] NOT NULL DEFAULT '{}',
    created_at timestamptz NOT NULL DEFAULT NOW(),
    updated_at timestamptz NOT NULL DEFAULT NOW(),
    last_synced_at timestamptz,
    CHECK ((latitude IS NULL) = (longitude IS NULL))
);
CREATE INDEX IF NOT EXISTS coffee_shops_location_idx ON coffee_shops USING GIST (location);
"""

_COLUMNS = """
    id::text AS id, google_place_id, name, address, city, state, zip_code, country,
    latitude, longitude, phone, website, email, rating::float AS rating, review_count,
    price_level, hours, categories, photos, created_at, updated_at, last_synced_at
"""

_POINT = "ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography"

_UPSERT_VALUES = """
    %(name)s,
    %(address)s,
    %(city)s,
    %(state)s,
    %(zip_code)s,
    %(country)s,
    %(lat)s,
    %(lng)s,
    CASE WHEN %(lng)s IS NOT NULL AND %(lat)s IS NOT NULL THEN
        ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography
    ELSE NULL END,
    %(phone)s,
    %(website)s,
    %(email)s,
    %(rating)s,
    %(review_count)s,
    %(price_level)s,
    %(hours)s,
    %(categories)s,
    %(photos)s,
    %(last_synced_at)s,
    NOW()
"""

_UPSERT_SET = """
    google_place_id = EXCLUDED.google_place_id,
    name = EXCLUDED.name,
    address = EXCLUDED.address,
    city = EXCLUDED.city,
    state = EXCLUDED.state,
    zip_code = EXCLUDED.zip_code,
    country = EXCLUDED.country,
    latitude = EXCLUDED.latitude,
    longitude = EXCLUDED.longitude,
    location = EXCLUDED.location,
    phone = EXCLUDED.phone,
    website = EXCLUDED.website,
    email = EXCLUDED.email,
    rating = EXCLUDED.rating,
    review_count = EXCLUDED.review_count,
    price_level = EXCLUDED.price_level,
    hours = EXCLUDED.hours,
    categories = EXCLUDED.categories,
    photos = EXCLUDED.photos,
    last_synced_at = COALESCE(EXCLUDED.last_synced_at, coffee_shops.last_synced_at),
    updated_at = NOW()
"""

_UPSERT_COLUMNS = """
    name, address, city, state, zip_code, country, latitude, longitude, location,
    phone, website, email, rating, review_count, price_level, hours, categories, photos,
    last_synced_at, updated_at
"""

# Concurrent discovery runs may both see a place as new; the conflict turns
# the second insert into an update.
_UPSERT_WITH_PLACE_ID = f"""
INSERT INTO coffee_shops (google_place_id, {_UPSERT_COLUMNS})
VALUES (%(google_place_id)s, {_UPSERT_VALUES})
ON CONFLICT (google_place_id) DO UPDATE SET {_UPSERT_SET}
RETURNING {_COLUMNS};
"""

_UPSERT_WITHOUT_PLACE_ID = f"""
INSERT INTO coffee_shops (id, google_place_id, {_UPSERT_COLUMNS})
VALUES (COALESCE(%(id)s::uuid, gen_random_uuid()), %(google_place_id)s, {_UPSERT_VALUES})
ON CONFLICT (id) DO UPDATE SET {_UPSERT_SET}
RETURNING {_COLUMNS};
"""

_SELECT_BY_ID = f"SELECT {_COLUMNS} FROM coffee_shops WHERE id = %(id)s::uuid;"

_SELECT_BY_PLACE_ID = f"SELECT {_COLUMNS} FROM coffee_shops WHERE google_place_id = %(google_place_id)s;"

_COUNT_WITHIN_RADIUS = f"""
SELECT COUNT(*) AS total FROM coffee_shops
WHERE location IS NOT NULL AND ST_DWithin(location, {_POINT}, %(radius)s);
"""

_SELECT_WITHIN_RADIUS = f"""
SELECT {_COLUMNS}, ST_Distance(location, {_POINT}) AS distance_m
FROM coffee_shops
WHERE location IS NOT NULL AND ST_DWithin(location, {_POINT}, %(radius)s)
ORDER BY distance_m ASC
LIMIT %(limit)s;
"""

_SELECT_NAMED_WITHIN_RADIUS = f"""
SELECT {_COLUMNS}, ST_Distance(location, {_POINT}) AS distance_m
FROM coffee_shops
WHERE location IS NOT NULL
  AND ST_DWithin(location, {_POINT}, %(radius)s)
  AND name ILIKE %(pattern)s
ORDER BY distance_m ASC;
"""


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _hours_to_json(hours: Optional[Dict[str, DayHours]]) -> Optional[Dict[str, Dict[str, Any]]]:
    if hours is None:
        return None
    return {day: {"open": h.open, "close": h.close, "is_closed": h.is_closed} for day, h in hours.items()}


def _hours_from_json(raw: Any) -> Optional[Dict[str, DayHours]]:
    if not isinstance(raw, dict):
        return None
    return {
        day: DayHours(
            open=value.get("open", ""),
            close=value.get("close", ""),
            is_closed=bool(value.get("is_closed", False)),
        )
        for day, value in raw.items()
        if isinstance(value, dict)
    }


def _prepare_params(shop: Shop) -> Dict[str, Any]:
    hours = _hours_to_json(shop.hours)
    return {
        "id": shop.id,
        "google_place_id": shop.external_id,
        "name": shop.name,
        "address": shop.address,
        "city": shop.city,
        "state": shop.state,
        "zip_code": shop.zip_code,
        "country": shop.country,
        "lat": shop.latitude,
        "lng": shop.longitude,
        "phone": shop.phone,
        "website": shop.website,
        "email": shop.email,
        "rating": shop.rating,
        "review_count": shop.review_count,
        "price_level": shop.price_level,
        "hours": extras.Json(hours) if hours is not None else None,
        "categories": list(shop.categories),
        "photos": list(shop.photos),
        "last_synced_at": shop.last_synced_at,
    }


def row_to_shop(row: Dict[str, Any]) -> Shop:
    return Shop(
        id=row.get("id"),
        external_id=row.get("google_place_id"),
        name=row.get("name") or "",
        address=row.get("address") or "",
        city=row.get("city") or "",
        state=row.get("state") or "",
        zip_code=row.get("zip_code") or "",
        country=row.get("country") or "US",
        latitude=row.get("latitude"),
        longitude=row.get("longitude"),
        phone=row.get("phone"),
        website=row.get("website"),
        email=row.get("email"),
        rating=row.get("rating"),
        review_count=row.get("review_count") or 0,
        price_level=row.get("price_level"),
        hours=_hours_from_json(row.get("hours")),
        categories=list(row.get("categories") or []),
        photos=list(row.get("photos") or []),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        last_synced_at=row.get("last_synced_at"),
    )


def _build_text_search(filters: SearchFilters) -> Tuple[str, Dict[str, Any]]:
    clauses: List[str] = []
    params: Dict[str, Any] = {}

    if filters.query and filters.query.strip():
        clauses.append("(name ILIKE %(pattern)s OR address ILIKE %(pattern)s OR city ILIKE %(pattern)s)")
        params["pattern"] = _like_pattern(filters.query.strip())
    # Bounds only act on shops that carry the field.
    if filters.min_rating is not None:
        clauses.append("(rating IS NULL OR rating >= %(min_rating)s)")
        params["min_rating"] = filters.min_rating
    if filters.max_rating is not None:
        clauses.append("(rating IS NULL OR rating <= %(max_rating)s)")
        params["max_rating"] = filters.max_rating
    if filters.price_levels:
        clauses.append("(price_level IS NULL OR price_level = ANY(%(price_levels)s))")
        params["price_levels"] = list(filters.price_levels)
    if filters.categories:
        clauses.append("categories && %(categories)s")
        params["categories"] = list(filters.categories)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    sql = f"SELECT {_COLUMNS}, COUNT(*) OVER () AS total_count FROM coffee_shops {where} ORDER BY rating DESC NULLS LAST, name ASC"
    if filters.limit is not None:
        sql += " LIMIT %(limit)s"
        params["limit"] = filters.limit
    if filters.offset:
        sql += " OFFSET %(offset)s"
        params["offset"] = filters.offset
    return sql + ";", params


class ShopRepository:
    """Persistence facade over the ``coffee_shops`` table.

    Radius queries are answered by PostGIS and come back sorted nearest first.
    """

    def _fetch(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            with get_connection() as conn:
                try:
                    with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                        cur.execute(sql, params)
                        rows = cur.fetchall()
                    conn.commit()
                except psycopg2.Error:
                    conn.rollback()
                    raise
        except psycopg2.Error as exc:
            logger.error("Store query failed: %s", exc)
            raise PersistenceError(str(exc)) from exc
        return [dict(row) for row in rows]

    def ensure_schema(self) -> None:
        try:
            with get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(_CREATE_SCHEMA)
                conn.commit()
        except psycopg2.Error as exc:
            raise PersistenceError(str(exc)) from exc
        logger.info("coffee_shops schema ensured")

    def by_id(self, shop_id: str) -> Optional[Shop]:
        try:
            uuid.UUID(str(shop_id))
        except ValueError:
            # Ids are uuids; anything else cannot name a stored shop.
            return None
        rows = self._fetch(_SELECT_BY_ID, {"id": shop_id})
        return row_to_shop(rows[0]) if rows else None

    def by_external_id(self, external_id: str) -> Optional[Shop]:
        rows = self._fetch(_SELECT_BY_PLACE_ID, {"google_place_id": external_id})
        return row_to_shop(rows[0]) if rows else None

    def upsert(self, shop: Shop) -> Shop:
        """Persist a shop with an idempotent upsert and return the stored row."""
        if not shop.name:
            raise ValueError("name is required for upsert")
        params = _prepare_params(shop)
        sql = _UPSERT_WITH_PLACE_ID if shop.external_id else _UPSERT_WITHOUT_PLACE_ID
        rows = self._fetch(sql, params)
        logger.debug("Upserted coffee shop %s", shop.name)
        return row_to_shop(rows[0])

    def text_search(self, filters: SearchFilters) -> Tuple[List[Shop], int]:
        sql, params = _build_text_search(filters)
        rows = self._fetch(sql, params)
        total = int(rows[0]["total_count"]) if rows else 0
        return [row_to_shop(row) for row in rows], total

    def count_within_radius(self, center: Coordinate, radius_meters: float) -> int:
        params = {"lat": center.latitude, "lng": center.longitude, "radius": radius_meters}
        rows = self._fetch(_COUNT_WITHIN_RADIUS, params)
        return int(rows[0]["total"]) if rows else 0

    def find_within_radius(self, center: Coordinate, radius_meters: float, limit: int) -> List[RankedShop]:
        params = {"lat": center.latitude, "lng": center.longitude, "radius": radius_meters, "limit": limit}
        rows = self._fetch(_SELECT_WITHIN_RADIUS, params)
        return [RankedShop(shop=row_to_shop(row), distance_m=float(row["distance_m"])) for row in rows]

    def find_named_within_radius(self, name: str, center: Coordinate, radius_meters: float) -> List[RankedShop]:
        params = {
            "lat": center.latitude,
            "lng": center.longitude,
            "radius": radius_meters,
            "pattern": _like_pattern(name.strip()),
        }
        rows = self._fetch(_SELECT_NAMED_WITHIN_RADIUS, params)
        return [RankedShop(shop=row_to_shop(row), distance_m=float(row["distance_m"])) for row in rows]
