"""Core data models shared by discovery, search and the HTTP adapter."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.latitude, "lng": self.longitude}


@dataclass(frozen=True, slots=True)
class DayHours:
    """Opening window for a single weekday, times as 24h ``HH:MM`` strings."""

    open: str = ""
    close: str = ""
    is_closed: bool = False


def _unique(items: Optional[List[str]]) -> List[str]:
    seen = set()
    result = []
    for item in items or []:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


@dataclass(slots=True)
class Shop:
    """A coffee shop record, either stored or freshly normalized from the provider."""

    name: str
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "US"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    rating: Optional[float] = None
    review_count: int = 0
    price_level: Optional[int] = None
    hours: Optional[Dict[str, DayHours]] = None
    categories: List[str] = field(default_factory=list)
    photos: List[str] = field(default_factory=list)
    external_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    # Provider payload the core never reads (popular times and the like).
    raw_snapshot: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.review_count is None:
            self.review_count = 0
        if self.review_count < 0:
            raise ValueError(f"review_count must be >= 0 for {self.name!r}")
        if self.price_level is not None and self.price_level not in (1, 2, 3, 4):
            raise ValueError(f"price_level must be between 1 and 4 for {self.name!r}")
        if self.rating is not None and not 0 <= self.rating <= 5:
            raise ValueError(f"rating must be between 0 and 5 for {self.name!r}")
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError(f"latitude and longitude must be set together for {self.name!r}")
        self.categories = _unique(self.categories)
        self.photos = _unique(self.photos)

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("raw_snapshot", None)
        data["google_place_id"] = data.pop("external_id")
        for key in ("created_at", "updated_at", "last_synced_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass(frozen=True, slots=True)
class RejectedPlace:
    """A provider result that could not be turned into a valid Shop."""

    name: str
    reason: str


@dataclass(slots=True)
class RankedShop:
    """A shop paired with its distance from the search center."""

    shop: Shop
    distance_m: float

    @property
    def distance_km(self) -> float:
        return self.distance_m / 1000

    def to_dict(self) -> Dict[str, Any]:
        data = self.shop.to_dict()
        data["distance_km"] = self.distance_km
        return data


@dataclass(slots=True)
class SearchFilters:
    """Transient query object; never persisted."""

    query: str = ""
    center: Optional[Coordinate] = None
    location_text: Optional[str] = None
    radius_meters: Optional[float] = None
    min_rating: Optional[float] = None
    max_rating: Optional[float] = None
    price_levels: List[int] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    limit: Optional[int] = 20
    offset: int = 0


@dataclass(slots=True)
class DiscoveryResult:
    added: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)
    location: Optional[Coordinate] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": self.added,
            "updated": self.updated,
            "errors": list(self.errors),
            "location": self.location.to_dict() if self.location else None,
        }


@dataclass(slots=True)
class SearchResult:
    """Uniform search envelope; ``success`` is False only for failure envelopes."""

    shops: List[RankedShop] = field(default_factory=list)
    total_count: int = 0
    has_more: bool = False
    search_type: Optional[str] = None
    detected_intent: Optional[str] = None
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "SearchResult":
        return cls(success=False, error=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coffee_shops": [item.to_dict() for item in self.shops],
            "total_count": self.total_count,
            "has_more": self.has_more,
            "search_type": self.search_type,
            "detected_intent": self.detected_intent,
        }
