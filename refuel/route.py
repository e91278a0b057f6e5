"""Synthetic street-like routes between two points."""

import random
from typing import Optional

from .config import CONFIG
from .geo import haversine_distance, bearing_between, interpolate, point_to_segment_distance
from .models import Coordinate


def generate_route(start: Coordinate, end: Coordinate,
                   rng: Optional[random.Random] = None) -> list[Coordinate]:
    """Generate a path from start to end that looks like it follows streets.

    A few "intersections" are placed along the straight line, each nudged
    sideways by a small random amount. The first and last points are start
    and end themselves.
    """
    rng = rng or random.Random()
    jitter = CONFIG["route_jitter"]
    count = rng.randint(CONFIG["route_min_intersections"], CONFIG["route_max_intersections"])

    points = [start]
    for i in range(1, count + 1):
        base = interpolate(start, end, i / (count + 1))
        points.append(Coordinate(
            lat=base.lat + rng.uniform(-jitter, jitter),
            lon=base.lon + rng.uniform(-jitter, jitter),
        ))
    points.append(end)
    return points


def route_length(route: list[Coordinate]) -> float:
    """Total length of a route in meters"""
    return sum(haversine_distance(a, b) for a, b in zip(route, route[1:]))


def distance_to_route(point: Coordinate, route: list[Coordinate]) -> float:
    """Distance in meters from point to the nearest point on the route"""
    if not route:
        return float("inf")
    if len(route) == 1:
        return haversine_distance(point, route[0])
    return min(point_to_segment_distance(point, a, b) for a, b in zip(route, route[1:]))


def point_along_route(route: list[Coordinate], fraction: float) -> Coordinate:
    """Position at the given fraction (0-1) of the route's length"""
    if len(route) == 1:
        return route[0]
    fraction = max(0.0, min(1.0, fraction))
    if fraction >= 1:
        return route[-1]

    legs = [haversine_distance(a, b) for a, b in zip(route, route[1:])]
    target = sum(legs) * fraction
    for i, leg in enumerate(legs):
        if target <= leg and leg > 0:
            return interpolate(route[i], route[i + 1], target / leg)
        target -= leg
    return route[-1]


def route_arrows(route: list[Coordinate]) -> list[tuple[Coordinate, float]]:
    """(point, bearing) pairs for direction arrows on every second interior point"""
    arrows = []
    for i in range(1, len(route) - 1, 2):
        arrows.append((route[i], bearing_between(route[i - 1], route[i])))
    return arrows
