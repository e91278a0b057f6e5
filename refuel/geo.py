"""Geographic utility functions."""

import math

from .models import Coordinate

EARTH_RADIUS = 6371000  # meters


def haversine_distance(a: Coordinate, b: Coordinate) -> float:
    """Calculate distance between two points in meters using Haversine formula"""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lon - a.lon)

    h = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    h = min(1.0, h)  # rounding can push antipodal points just past 1
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS * c


def bearing_between(a: Coordinate, b: Coordinate) -> float:
    """Calculate bearing from point a to point b in degrees (0-360, 0=North)"""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_lambda = math.radians(b.lon - a.lon)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))

    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360


def bearing_to_compass(bearing: float) -> str:
    """Convert bearing to compass direction"""
    directions = ["north", "northeast", "east", "southeast",
                  "south", "southwest", "west", "northwest"]
    index = round(bearing / 45) % 8
    return directions[index]


def interpolate(a: Coordinate, b: Coordinate, t: float) -> Coordinate:
    """Linear interpolation in coordinate space, t clamped to [0, 1].

    Good enough at city scale; no geodesic correction.
    """
    t = max(0.0, min(1.0, t))
    if t == 0:
        return a
    if t == 1:
        return b
    return Coordinate(
        lat=a.lat + (b.lat - a.lat) * t,
        lon=a.lon + (b.lon - a.lon) * t,
    )


def point_to_segment_distance(p: Coordinate, a: Coordinate, b: Coordinate) -> float:
    """Distance in meters from p to the nearest point of segment a-b.

    Projects onto a local equirectangular plane centred on p, then measures
    the chosen point with haversine.
    """
    cos_lat = math.cos(math.radians(p.lat))
    ax, ay = (a.lon - p.lon) * cos_lat, a.lat - p.lat
    bx, by = (b.lon - p.lon) * cos_lat, b.lat - p.lat
    dx, dy = bx - ax, by - ay

    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return haversine_distance(p, a)

    # Origin is p, so the projection parameter is -a.(b-a) / |b-a|^2
    t = max(0.0, min(1.0, -(ax * dx + ay * dy) / length_sq))
    return haversine_distance(p, interpolate(a, b, t))


def format_distance_km(meters: float) -> str:
    """Format meters as '1.2 km'"""
    return f"{meters / 1000:.1f} km"


def parse_distance_km(label: str) -> float:
    """Parse a distance label such as '1.2 km' or '350 m' into kilometers"""
    text = label.strip().lower()
    if text.endswith("km"):
        return float(text[:-2].strip())
    if text.endswith("m"):
        return float(text[:-1].strip()) / 1000
    return float(text)
