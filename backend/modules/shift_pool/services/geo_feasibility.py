# backend/modules/shift_pool/services/geo_feasibility.py

"""
Distance and commute feasibility between restaurant locations.

Everything except nearby_restaurants is a pure function. Durations are whole
minutes so that results are reproducible for identical inputs.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple
import math

from sqlalchemy.orm import Session

from modules.core.models import Restaurant
from ..config.shift_pool_config import CommuteConfig

EARTH_RADIUS_MILES = 3959.0
MILES_PER_DEGREE_LATITUDE = 69.0

DEFAULT_COMMUTE_CONFIG = CommuteConfig()


@dataclass(frozen=True)
class CommuteResult:
    feasible: bool
    estimated_minutes: int
    available_minutes: int
    buffer_minutes: int


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


def distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in miles (haversine)"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def estimate_commute(distance_miles: float, config: CommuteConfig = DEFAULT_COMMUTE_CONFIG) -> int:
    """
    Estimated door-to-door commute in minutes, rounded up.

    base time covers leaving one job and parking at the next; driving time
    is scaled by the traffic factor.
    """
    if distance_miles <= 0:
        return 0

    driving_minutes = distance_miles / config.speed_mph * 60
    return math.ceil(config.base_minutes + driving_minutes * config.traffic_factor)


def can_commute(
    first_shift_end: datetime,
    second_shift_start: datetime,
    distance_miles: float,
    config: CommuteConfig = DEFAULT_COMMUTE_CONFIG,
) -> CommuteResult:
    estimated = estimate_commute(distance_miles, config)
    available = (second_shift_start - first_shift_end).total_seconds() / 60
    buffer = available - estimated

    return CommuteResult(
        feasible=buffer >= config.min_buffer_minutes,
        estimated_minutes=estimated,
        available_minutes=math.floor(available),
        buffer_minutes=math.floor(buffer),
    )


def bounding_box(lat: float, lon: float, radius_miles: float) -> BoundingBox:
    """
    Coarse lat/lon rectangle around a point, used to pre-filter candidates
    in SQL. Callers re-check the exact distance.
    """
    lat_degrees = radius_miles / MILES_PER_DEGREE_LATITUDE
    lon_degrees = radius_miles / (MILES_PER_DEGREE_LATITUDE * math.cos(math.radians(lat)))

    return BoundingBox(
        min_lat=lat - lat_degrees,
        max_lat=lat + lat_degrees,
        min_lon=lon - lon_degrees,
        max_lon=lon + lon_degrees,
    )


def nearby_restaurants(
    db: Session,
    lat: float,
    lon: float,
    radius_miles: float,
    network_id: Optional[int] = None,
) -> List[Tuple[Restaurant, float]]:
    """Restaurants within radius_miles, nearest first, with their distance"""
    box = bounding_box(lat, lon, radius_miles)
    query = db.query(Restaurant).filter(
        Restaurant.latitude.between(box.min_lat, box.max_lat),
        Restaurant.longitude.between(box.min_lon, box.max_lon),
    )
    if network_id is not None:
        query = query.filter(Restaurant.network_id == network_id)

    results = []
    for restaurant in query.all():
        miles = distance(lat, lon, restaurant.latitude, restaurant.longitude)
        if miles <= radius_miles:
            results.append((restaurant, miles))

    results.sort(key=lambda item: (item[1], item[0].id))
    return results
