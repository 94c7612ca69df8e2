"""
GPS to venue-map projection and great-circle distance.

The venue map is calibrated with two reference points, each pairing a GPS
coordinate with a pixel on the map image. Projection is an axis-aligned linear
interpolation: longitude drives x, latitude drives y, each with its own scale
factor taken from the two calibration points. This assumes the map is drawn
with north along one map axis; rotation and skew are not corrected. At venue
scale (well under a kilometre) that error is acceptable.

A full affine fit would need three non-collinear reference points and can
replace ``project_to_map`` without changing its signature.
"""
import math

from venue_tracker.models import Coordinates, MapPoint, VenueCalibration

EARTH_RADIUS_M = 6_371_000.0

# Calibration points closer than this on both axes are treated as one point
DEGENERATE_EPSILON = 1e-9
# An axis whose GPS delta is below this gets scale 0 (no displacement)
AXIS_EPSILON = 1e-6

# Projected markers outside this pixel range are not rendered
OFF_MAP_MIN = -2000.0
OFF_MAP_MAX = 3000.0


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    """
    Great-circle distance between two coordinates, in metres.

    Symmetric, and exactly 0 for identical points.
    """
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lng - a.lng)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def axis_scales(calibration: VenueCalibration) -> tuple[float, float]:
    """
    Pixels per degree along each axis: (x per degree of longitude, y per degree of latitude).

    An axis on which the two calibration points (nearly) coincide gets 0.
    """
    p1, p2 = calibration.p1, calibration.p2
    d_lat = p2.gps.lat - p1.gps.lat
    d_lng = p2.gps.lng - p1.gps.lng

    scale_x = (p2.map.x - p1.map.x) / d_lng if abs(d_lng) > AXIS_EPSILON else 0.0
    scale_y = (p2.map.y - p1.map.y) / d_lat if abs(d_lat) > AXIS_EPSILON else 0.0
    return scale_x, scale_y


def project_to_map(point: Coordinates, calibration: VenueCalibration) -> MapPoint:
    """
    Project a GPS coordinate onto the calibrated venue map.

    Calibration point 1 is the origin; the offset of ``point`` from it is
    scaled per axis. Projecting either calibration point returns its own map
    coordinate (on axes where the calibration has a usable delta).

    Args:
        point: Coordinate to place on the map
        calibration: Two-point venue calibration

    Returns:
        Pixel position on the venue map image
    """
    p1, p2 = calibration.p1, calibration.p2

    if (
        abs(p2.gps.lat - p1.gps.lat) < DEGENERATE_EPSILON
        and abs(p2.gps.lng - p1.gps.lng) < DEGENERATE_EPSILON
    ):
        return MapPoint(x=p1.map.x, y=p1.map.y)

    scale_x, scale_y = axis_scales(calibration)
    return MapPoint(
        x=p1.map.x + (point.lng - p1.gps.lng) * scale_x,
        y=p1.map.y + (point.lat - p1.gps.lat) * scale_y,
    )


def is_off_map(position: MapPoint) -> bool:
    """True when a projected position is too far outside the map to draw."""
    return not (
        OFF_MAP_MIN <= position.x <= OFF_MAP_MAX
        and OFF_MAP_MIN <= position.y <= OFF_MAP_MAX
    )
