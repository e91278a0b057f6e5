"""Export a trip to an interactive HTML map."""

from typing import Optional

import folium
from folium import plugins

from .geo import bearing_to_compass
from .models import Coordinate, Trip
from .route import route_arrows, route_length


def create_trip_map(trip: Trip, route: list[Coordinate],
                    trace: Optional[list[Coordinate]] = None) -> folium.Map:
    """Map with the drawn route, direction arrows, the travelled trace and both ends"""
    trace = trace or []
    center = [(trip.origin.lat + trip.destination.lat) / 2,
              (trip.origin.lon + trip.destination.lon) / 2]

    m = folium.Map(location=center, zoom_start=15, tiles="CartoDB positron")
    folium.TileLayer("OpenStreetMap", name="OpenStreetMap").add_to(m)
    folium.TileLayer("CartoDB dark_matter", name="Dark").add_to(m)

    route_layer = folium.FeatureGroup(name="Route", show=True)
    if len(route) >= 2:
        folium.PolyLine(
            [[p.lat, p.lon] for p in route],
            weight=5,
            color="#3b82f6",
            opacity=0.7,
            popup=f"Route ({route_length(route):.0f}m)",
        ).add_to(route_layer)

        for point, bearing in route_arrows(route):
            # The arrow glyph points east, bearings are measured from north
            folium.Marker(
                [point.lat, point.lon],
                icon=folium.DivIcon(
                    html=f'<div style="transform: rotate({bearing - 90:.0f}deg);">&rarr;</div>',
                    icon_size=(20, 20),
                    icon_anchor=(10, 10),
                    class_name="route-arrow-icon",
                ),
                tooltip=f"Head {bearing_to_compass(bearing)}",
            ).add_to(route_layer)
    route_layer.add_to(m)

    if trace:
        trace_layer = folium.FeatureGroup(name="Travelled", show=True)
        folium.PolyLine(
            [[p.lat, p.lon] for p in trace],
            weight=3,
            color="#ef4444",
            opacity=0.8,
            popup="Travelled",
        ).add_to(trace_layer)
        trace_layer.add_to(m)

    folium.Marker(
        [trip.origin.lat, trip.origin.lon],
        popup="Start",
        icon=folium.Icon(color="green", icon="play"),
    ).add_to(m)
    folium.Marker(
        [trip.destination.lat, trip.destination.lon],
        popup=f"<b>{trip.station_name}</b><br>{trip.nominal_distance_km:.1f} km",
        icon=folium.Icon(color="red", icon="tint"),
    ).add_to(m)

    folium.LayerControl().add_to(m)
    plugins.Fullscreen().add_to(m)

    return m


def save_trip_map(path: str, trip: Trip, route: list[Coordinate],
                  trace: Optional[list[Coordinate]] = None) -> str:
    create_trip_map(trip, route, trace).save(path)
    return path
