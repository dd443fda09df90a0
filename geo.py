"""Great-circle distances and nearest-doctor ranking."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from errors import InvalidInput, NoDoctorsAvailable

EARTH_RADIUS_KM = 6371
NEAREST_DOCTOR_LIMIT = 3


def _usable_number(value: Any) -> bool:
    # bool is an int subclass; a stored `true` is not a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def _in_range(lat: float, lng: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lng <= 180


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float

    @classmethod
    def parse(cls, lat: Any, lng: Any) -> "Coordinate":
        """Build a Coordinate from request values.

        Numbers and numeric strings are accepted. Missing, boolean,
        non-finite or out-of-range values raise InvalidInput.
        """
        values = []
        for label, raw in (("lat", lat), ("lng", lng)):
            if raw is None or isinstance(raw, bool):
                raise InvalidInput("Valid lat/lng location required")
            if isinstance(raw, str):
                raw = raw.strip()
                if not raw:
                    raise InvalidInput("Valid lat/lng location required")
            try:
                number = float(raw)
            except (TypeError, ValueError, OverflowError):
                raise InvalidInput(f"Valid lat/lng location required ({label} is not a number)") from None
            if not math.isfinite(number):
                raise InvalidInput("Valid lat/lng location required")
            values.append(number)
        if not _in_range(values[0], values[1]):
            raise InvalidInput("Valid lat/lng location required (out of range)")
        return cls(values[0], values[1])

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in km between two points given in decimal degrees."""
    d_lat = (lat2 - lat1) * math.pi / 180
    d_lon = (lon2 - lon1) * math.pi / 180
    a = (math.sin(d_lat / 2) * math.sin(d_lat / 2)
         + math.cos(lat1 * math.pi / 180) * math.cos(lat2 * math.pi / 180)
         * math.sin(d_lon / 2) * math.sin(d_lon / 2))
    # rounding can push `a` just past 1 for antipodal points
    a = min(a, 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def resolve_coordinate(record: Dict[str, Any]) -> Optional[Coordinate]:
    """Nested `location` wins; top-level `lat`/`lng` is the fallback."""
    location = record.get("location")
    if isinstance(location, dict):
        lat, lng = location.get("lat"), location.get("lng")
        if _usable_number(lat) and _usable_number(lng) and _in_range(lat, lng):
            return Coordinate(float(lat), float(lng))
    lat, lng = record.get("lat"), record.get("lng")
    if _usable_number(lat) and _usable_number(lng) and _in_range(lat, lng):
        return Coordinate(float(lat), float(lng))
    return None


def rank_nearest_doctors(doctors: Iterable[Dict[str, Any]], origin: Coordinate,
                         limit: int = NEAREST_DOCTOR_LIMIT) -> List[Dict[str, Any]]:
    """Return copies of the closest doctors, nearest first, with `distanceKm`.

    Records without a usable location are skipped. Ties keep input order.
    Raises NoDoctorsAvailable when nothing is left to rank.
    """
    ranked = []
    for doctor in doctors:
        coord = resolve_coordinate(doctor)
        if coord is None:
            continue
        candidate = dict(doctor)
        candidate["location"] = coord.to_dict()
        candidate["distanceKm"] = haversine_distance(origin.lat, origin.lng, coord.lat, coord.lng)
        ranked.append(candidate)

    if not ranked:
        raise NoDoctorsAvailable()

    ranked.sort(key=lambda c: c["distanceKm"])
    return ranked[:limit]
