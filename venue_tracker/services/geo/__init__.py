"""
Geodetic helpers: GPS to map-pixel projection and great-circle distance.
"""
from venue_tracker.services.geo.projection import (
    EARTH_RADIUS_M,
    axis_scales,
    haversine_distance,
    is_off_map,
    project_to_map,
)

__all__ = ["EARTH_RADIUS_M", "axis_scales", "haversine_distance", "is_off_map", "project_to_map"]
