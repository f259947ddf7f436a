"""Utilities for transforming SerpAPI Google Maps results into Shop records.

All parsing here is heuristic string matching tuned to the provider's
output. Address parsing in particular is best-effort and lossy.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from coffeehaus.models import WEEKDAYS, Coordinate, DayHours, Shop

logger = logging.getLogger(__name__)

COFFEE_TYPES = {"cafe", "coffee_shop", "coffee shop", "bakery", "restaurant", "food", "establishment"}

CATEGORY_LABELS = {
    "cafe": "Coffee Shop",
    "coffee_shop": "Coffee Shop",
    "coffee shop": "Coffee Shop",
    "bakery": "Bakery",
    "restaurant": "Restaurant",
    "food": "Food & Beverage",
    "establishment": "Business",
}
MAX_CATEGORIES = 3
DETAILS_DEFAULT_CATEGORIES = ["Coffee Shop"]

DEFAULT_COUNTRY = "US"
COUNTRY_SUFFIXES = {"united states": "US", "usa": "US", "us": "US"}
STATE_ZIP_RE = re.compile(r"([A-Z]{2})\s+(\d{5}(?:-\d{4})?)")

CURRENCY_SYMBOLS = ("$", "€", "£", "¥")
PRICE_WORDS = {
    "inexpensive": 1,
    "moderate": 2,
    "expensive": 3,
    "very expensive": 4,
}

DEFAULT_OPEN = "06:00"
DEFAULT_CLOSE = "22:00"
ALL_DAY = ("00:00", "23:59")

_TIME = r"(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\.?"
_TIME_NO_MERIDIEM = r"(\d{1,2})(?::(\d{2}))?\s*(?:([ap])\.?m\.?)?"
OPENS_RE = re.compile(r"opens?\s+" + _TIME, re.IGNORECASE)
CLOSES_RE = re.compile(r"closes?\s+" + _TIME, re.IGNORECASE)
RANGE_RE = re.compile(_TIME_NO_MERIDIEM + r"\s*[-\u2013\u2014]\s*" + _TIME, re.IGNORECASE)
# SerpAPI sprinkles narrow no-break and thin spaces into time strings.
_SPACES_RE = re.compile(r"[\u00a0\u2009\u202f]")


# ---------- scalar helpers ----------


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)

    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch.isdigit())
        if digits:
            return int(digits)
    return None


def extract_coordinate(raw: Dict[str, Any]) -> Optional[Coordinate]:
    """Read a coordinate pair from either ``gps_coordinates`` or flat fields."""
    gps = raw.get("gps_coordinates") or {}
    latitude = _safe_float(gps.get("latitude", raw.get("latitude")))
    longitude = _safe_float(gps.get("longitude", raw.get("longitude")))
    if latitude is None or longitude is None:
        return None
    return Coordinate(latitude, longitude)


# ---------- address ----------


def parse_address(formatted: Optional[str]) -> Tuple[str, str, str, str, str]:
    """Split ``"street, city, ST 12345"`` into (street, city, state, zip, country).

    The last segment is expected to hold "STATE ZIP" and the one before it
    the city. Anything unparseable comes back as an empty string.
    """
    parts = [part.strip() for part in (formatted or "").split(",") if part.strip()]
    country = DEFAULT_COUNTRY
    if parts and parts[-1].lower() in COUNTRY_SUFFIXES:
        country = COUNTRY_SUFFIXES[parts.pop().lower()]

    if not parts:
        return "", "", "", "", country

    match = STATE_ZIP_RE.search(parts[-1])
    state = match.group(1) if match else ""
    zip_code = match.group(2) if match else ""
    city = parts[-2] if len(parts) >= 2 else ""
    street = ", ".join(parts[:-2])
    return street, city, state, zip_code, country


# ---------- hours ----------


def _to_24h(hour: str, minute: Optional[str], meridiem: str) -> str:
    value = int(hour) % 12
    if meridiem.lower() == "p":
        value += 12
    return f"{value:02d}:{int(minute or 0):02d}"


def _every_day(open_time: str, close_time: str) -> Dict[str, DayHours]:
    return {day: DayHours(open=open_time, close=close_time, is_closed=False) for day in WEEKDAYS}


def _all_day_rule(text: str) -> Optional[Dict[str, DayHours]]:
    if "24 hours" in text.lower():
        return _every_day(*ALL_DAY)
    return None


def _closed_opens_rule(text: str) -> Optional[Dict[str, DayHours]]:
    if "closed" not in text.lower():
        return None
    match = OPENS_RE.search(text)
    if not match:
        return None
    return _every_day(_to_24h(*match.groups()), DEFAULT_CLOSE)


def _open_closes_rule(text: str) -> Optional[Dict[str, DayHours]]:
    lowered = text.lower()
    if "open" not in lowered or "closed" in lowered:
        return None
    match = CLOSES_RE.search(text)
    if not match:
        return None
    return _every_day(DEFAULT_OPEN, _to_24h(*match.groups()))


# Evaluated in order; the first rule returning hours wins.
HOURS_TEXT_RULES: List[Callable[[str], Optional[Dict[str, DayHours]]]] = [
    _all_day_rule,
    _closed_opens_rule,
    _open_closes_rule,
]


def parse_hours_text(text: str) -> Optional[Dict[str, DayHours]]:
    """Interpret a one-line status such as "Closed ⋅ Opens 7 AM".

    A single-day sentence never becomes a guessed weekly schedule beyond
    the rules above; anything else yields ``None``.
    """
    cleaned = _SPACES_RE.sub(" ", text or "")
    for rule in HOURS_TEXT_RULES:
        hours = rule(cleaned)
        if hours is not None:
            return hours
    return None


def parse_day_hours(text: str) -> DayHours:
    cleaned = _SPACES_RE.sub(" ", text or "")
    lowered = cleaned.lower()
    if "closed" in lowered:
        return DayHours(is_closed=True)
    if "24 hours" in lowered:
        return DayHours(open=ALL_DAY[0], close=ALL_DAY[1])
    match = RANGE_RE.search(cleaned)
    if not match:
        return DayHours(is_closed=True)
    open_hour, open_minute, open_meridiem, close_hour, close_minute, close_meridiem = match.groups()
    # "7–11 AM" shares the closing meridiem.
    return DayHours(
        open=_to_24h(open_hour, open_minute, open_meridiem or close_meridiem),
        close=_to_24h(close_hour, close_minute, close_meridiem),
    )


def _iter_day_entries(hours: Any) -> Iterable[Tuple[str, str]]:
    # operating_hours comes as {"monday": "..."}; older payloads as [{"monday": "..."}].
    if isinstance(hours, dict):
        yield from hours.items()
    elif isinstance(hours, list):
        for entry in hours:
            if isinstance(entry, dict):
                yield from entry.items()


def parse_hours(hours: Any) -> Optional[Dict[str, DayHours]]:
    if not hours:
        return None
    if isinstance(hours, str):
        return parse_hours_text(hours)

    parsed = {}
    for day, text in _iter_day_entries(hours):
        parsed[str(day).strip().lower()] = parse_day_hours(str(text))
    return parsed or None


# ---------- price ----------


def parse_price_level(price: Any) -> Optional[int]:
    """Map "$$" or "Moderate" style price strings to 1-4; unknown yields ``None``."""
    text = _strip_or_none(price)
    if not text:
        return None

    for symbol in CURRENCY_SYMBOLS:
        if symbol in text:
            count = text.count(symbol)
            return count if 1 <= count <= 4 else None

    return PRICE_WORDS.get(text.lower())


# ---------- categories ----------


def _types_of(raw: Dict[str, Any]) -> List[str]:
    types = raw.get("types")
    if isinstance(types, list) and types:
        return [str(t) for t in types if t]
    single = raw.get("type")
    return [str(single)] if single else []


def is_coffee_related(types: Iterable[str]) -> bool:
    return any(t.lower() in COFFEE_TYPES for t in types)


def extract_categories(types: Iterable[str]) -> List[str]:
    categories: List[str] = []
    for type_name in types:
        label = CATEGORY_LABELS.get(type_name.lower())
        if label is None:
            label = type_name.replace("_", " ").title()
        if label and label not in categories:
            categories.append(label)
    return categories[:MAX_CATEGORIES]


# ---------- conversion ----------


def _base_shop(raw: Dict[str, Any], categories: List[str], photos: List[str]) -> Shop:
    street, city, state, zip_code, country = parse_address(raw.get("address"))
    point = extract_coordinate(raw)
    return Shop(
        name=(raw.get("title") or raw.get("name") or "").strip(),
        address=street,
        city=city,
        state=state,
        zip_code=zip_code,
        country=country,
        latitude=point.latitude if point else None,
        longitude=point.longitude if point else None,
        phone=_strip_or_none(raw.get("phone")),
        website=_strip_or_none(raw.get("website")),
        rating=_safe_float(raw.get("rating")),
        review_count=_safe_int(raw.get("reviews")) or 0,
        price_level=parse_price_level(raw.get("price")),
        hours=parse_hours(raw.get("operating_hours") or raw.get("hours")),
        categories=categories,
        photos=photos,
        external_id=_strip_or_none(raw.get("place_id")),
        raw_snapshot=raw,
    )


def to_shop(raw: Dict[str, Any]) -> Optional[Shop]:
    """Convert one local result into a Shop; ``None`` when it is not a usable coffee place."""
    name = (raw.get("title") or raw.get("name") or "").strip()
    if not name:
        return None
    types = _types_of(raw)
    if not is_coffee_related(types):
        logger.debug("Skipping non-coffee result %s types=%s", name, types)
        return None
    thumbnail = _strip_or_none(raw.get("thumbnail"))
    return _base_shop(raw, extract_categories(types), [thumbnail] if thumbnail else [])


def details_to_shop(raw: Dict[str, Any]) -> Optional[Shop]:
    """Convert a place_results payload into a Shop."""
    if not (raw.get("title") or raw.get("name")):
        return None
    photos = []
    for photo in raw.get("photos") or []:
        if isinstance(photo, dict) and photo.get("image"):
            photos.append(photo["image"])
    return _base_shop(raw, list(DETAILS_DEFAULT_CATEGORIES), photos)


def extract_local_results(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """SerpAPI sometimes returns local_results as a list or nested dict."""
    local_results = data.get("local_results")
    if isinstance(local_results, list):
        return [item for item in local_results if isinstance(item, dict)]
    if isinstance(local_results, dict):
        logger.debug("local_results is dict with keys: %s", list(local_results.keys())[:10])
        for maybe in (local_results.get("places"), local_results.get("results")):
            if isinstance(maybe, list):
                return [item for item in maybe if isinstance(item, dict)]
    return []
