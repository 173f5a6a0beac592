"""
Geo index: great-circle distance and coarse region membership.

Regions are rectangular approximations of US states. Some rectangles
overlap (California and Nevada, for instance) and there are gaps between
others, so a lookup reports every candidate and resolves precedence by
table order: the first matching box wins.
"""
import math
from typing import List, NamedTuple, Optional

from pydantic import BaseModel

from dealdrop.models.user import Location

# Earth's radius in kilometers
EARTH_RADIUS_KM = 6371.0


class RegionBounds(NamedTuple):
    name: str
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, point: Location) -> bool:
        return (
            self.min_lat <= point.lat <= self.max_lat
            and self.min_lng <= point.lng <= self.max_lng
        )


# Order matters: it is the precedence used when boxes overlap.
REGION_BOUNDS = (
    RegionBounds("Arizona", 31.33, 37.00, -114.82, -109.05),
    RegionBounds("Nevada", 35.00, 42.00, -120.01, -114.04),
    RegionBounds("Utah", 37.00, 42.00, -114.05, -109.04),
    RegionBounds("New Mexico", 31.33, 37.00, -109.05, -103.00),
    RegionBounds("Colorado", 37.00, 41.00, -109.05, -102.04),
    RegionBounds("California", 32.53, 42.01, -124.41, -114.13),
    RegionBounds("Oregon", 41.99, 46.29, -124.57, -116.46),
    RegionBounds("Washington", 45.54, 49.00, -124.85, -116.92),
    RegionBounds("Texas", 25.84, 36.50, -106.65, -93.51),
    RegionBounds("Florida", 24.40, 31.00, -87.63, -80.03),
    RegionBounds("New York", 40.50, 45.02, -79.76, -71.86),
)

KNOWN_REGIONS = tuple(bounds.name for bounds in REGION_BOUNDS)


class RegionMatch(BaseModel):
    """Result of a region lookup. ``region`` is None when the point is Unknown."""
    region: Optional[str] = None
    candidates: List[str] = []

    @property
    def is_known(self) -> bool:
        return self.region is not None

    @property
    def is_ambiguous(self) -> bool:
        return len(self.candidates) > 1


def distance_km(a: Location, b: Location) -> float:
    """
    Calculate the distance between two geographic points using the Haversine formula.
    
    Args:
        a: Origin point (degrees)
        b: Destination point (degrees)
        
    Returns:
        Distance in kilometers
    """
    lat1 = math.radians(a.lat)
    lon1 = math.radians(a.lng)
    lat2 = math.radians(b.lat)
    lon2 = math.radians(b.lng)
    
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    
    h = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    
    return EARTH_RADIUS_KM * c


def region_of(point: Location) -> RegionMatch:
    """Resolve the region containing ``point`` (first match wins)."""
    candidates = [bounds.name for bounds in REGION_BOUNDS if bounds.contains(point)]
    return RegionMatch(
        region=candidates[0] if candidates else None,
        candidates=candidates
    )


def is_within_radius(origin: Location, point: Location, radius_km: float) -> bool:
    """Boundary inclusive: a point exactly ``radius_km`` away is inside."""
    return distance_km(origin, point) <= radius_km
