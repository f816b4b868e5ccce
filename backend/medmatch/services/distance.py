"""
Great-circle distance between geographic points.
"""
import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    """A validated (latitude, longitude) pair in decimal degrees."""
    latitude: float
    longitude: float

    @classmethod
    def from_coordinates(cls, latitude, longitude) -> Optional["GeoPoint"]:
        """
        Build a point from raw coordinates.

        Returns None when either coordinate is missing, not a number,
        non-finite or outside the valid range. Callers treat None as
        "no geographic point".
        """
        if latitude is None or longitude is None:
            return None
        try:
            lat = float(latitude)
            lng = float(longitude)
        except (TypeError, ValueError):
            return None
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return None
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
            return None
        return cls(lat, lng)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance in kilometers on a spherical earth (radius 6371 km)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push a hair outside [0, 1] for antipodal or identical points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(origin: GeoPoint, target: GeoPoint) -> float:
    return haversine_km(origin.latitude, origin.longitude, target.latitude, target.longitude)
