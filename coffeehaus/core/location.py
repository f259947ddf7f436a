"""Ways of turning caller input into a single search center."""

from __future__ import annotations

from typing import Optional

from coffeehaus.models import Coordinate


class LocationResolver:
    """Resolves to one coordinate, or ``None`` when the input names no known place."""

    def resolve(self) -> Optional[Coordinate]:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


class DirectCoordinates(LocationResolver):
    def __init__(self, center: Coordinate, label: Optional[str] = None) -> None:
        self._center = center
        self._label = label

    def resolve(self) -> Optional[Coordinate]:
        return self._center

    def describe(self) -> str:
        return self._label or f"{self._center.latitude},{self._center.longitude}"


class GeocodeText(LocationResolver):
    """Geocodes free text through the places provider on each ``resolve()``.

    Provider failures propagate as ``PlacesError``.
    """

    def __init__(self, places, text: str) -> None:
        self._places = places
        self._text = text

    def resolve(self) -> Optional[Coordinate]:
        return self._places.geocode(self._text)

    def describe(self) -> str:
        return self._text
