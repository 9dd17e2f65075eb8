from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

EARTH_RADIUS_KM = 6371.0

_ZIP_COMUNA = re.compile(r"(\d{7})\s+([^,]+)")

# Address component types tried, in order, when the formatted address has no postal code
_COMUNA_COMPONENT_TYPES = (
    "administrative_area_level_3",
    "sublocality",
    "sublocality_level_1",
    "locality",
)


@dataclass(frozen=True)
class GeofenceResult:
    distance_km: float
    radius_m: float

    @property
    def distance_m(self) -> float:
        return self.distance_km * 1000.0

    @property
    def within(self) -> bool:
        return self.distance_m <= self.radius_m


# PUBLIC_INTERFACE
def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in kilometres between two lat/lng pairs."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


# PUBLIC_INTERFACE
def check_geofence(
    lat: float,
    lng: float,
    target_lat: Optional[float],
    target_lng: Optional[float],
    radius_m: float = 500.0,
) -> GeofenceResult:
    """
    Check whether a position lies inside the radius around a target.

    A target without coordinates is measured as (0, 0), so it is never reachable
    from a real position in the field.
    """
    distance = haversine_km(lat, lng, target_lat or 0.0, target_lng or 0.0)
    return GeofenceResult(distance_km=distance, radius_m=radius_m)


# PUBLIC_INTERFACE
def extract_comuna(
    formatted_address: Optional[str],
    components: Iterable[Mapping] | None = None,
) -> str:
    """
    Extract the comuna from a geocoded address.

    Chilean formatted addresses carry a 7-digit postal code followed by the
    comuna ("Av. Providencia 2000, 7500000 Providencia, Región Metropolitana").
    When that pattern is missing the address components are searched.
    """
    if formatted_address:
        match = _ZIP_COMUNA.search(formatted_address)
        if match and match.group(2):
            return match.group(2).strip()

    comps = list(components or [])
    for wanted in _COMUNA_COMPONENT_TYPES:
        for comp in comps:
            if wanted in (comp.get("types") or []):
                return comp.get("long_name") or ""
    return ""
