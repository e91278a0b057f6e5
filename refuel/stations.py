"""Station directory: the catalog of nearby fuel stations."""

import json
import math
import random
from dataclasses import dataclass, field
from typing import Optional

from .config import CONFIG
from .exceptions import CatalogError
from .geo import haversine_distance, format_distance_km, parse_distance_km
from .models import Coordinate

BRANDS = ["Terpel", "Texaco", "Mobil", "Primax", "Biomax", "Petrobras", "Zeuss", "Puma"]
SERVICE_SETS = [
    ["Shop", "Restrooms"],
    ["Shop", "Restrooms", "Air"],
    ["Shop", "Cafe"],
    ["Shop", "Restrooms", "Air", "Cafe"],
    ["Restrooms", "Air", "Car wash"],
    ["Shop", "Restrooms", "Car wash"],
]
NEIGHBORHOODS = [
    "Centro", "Norte", "Sur", "Chapinero", "Suba", "Kennedy", "Usaquen", "Fontibon",
    "Engativa", "Bosa", "Ciudad Bolivar", "San Cristobal", "Teusaquillo",
    "Puente Aranda", "La Candelaria", "Santa Fe",
]
STREET_TYPES = ["Calle", "Carrera", "Avenida", "Diagonal", "Transversal"]
BASE_PRICE = 9500  # COP per gallon
KM_PER_DEGREE = 111.32


@dataclass
class Station:
    id: str
    name: str
    brand: str
    position: Coordinate
    price: str
    distance: str  # label such as "1.2 km"
    address: str = ""
    rating: float = 0.0
    services: list[str] = field(default_factory=list)

    @property
    def distance_km(self) -> float:
        return parse_distance_km(self.distance)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "brand": self.brand,
            "position": [self.position.lat, self.position.lon],
            "price": self.price,
            "distance": self.distance,
            "address": self.address,
            "rating": self.rating,
            "services": list(self.services),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Station":
        lat, lon = d["position"]
        return cls(
            id=str(d["id"]),
            name=d["name"],
            brand=d.get("brand", ""),
            position=Coordinate(lat=float(lat), lon=float(lon)),
            price=d.get("price", ""),
            distance=d["distance"],
            address=d.get("address", ""),
            rating=float(d.get("rating", 0.0)),
            services=list(d.get("services", [])),
        )


class StationDirectory:
    """Read-only lookup of stations around the user's location"""

    def __init__(self, stations: list[Station], user_location: Coordinate):
        self.user_location = user_location
        self._stations = {s.id: s for s in stations}
        self._order = [s.id for s in stations]

    def find_by_id(self, station_id: str) -> Optional[Station]:
        return self._stations.get(station_id)

    def __iter__(self):
        return (self._stations[sid] for sid in self._order)

    def __len__(self) -> int:
        return len(self._order)

    @classmethod
    def generate(cls, center: Coordinate, count: Optional[int] = None,
                 rng: Optional[random.Random] = None) -> "StationDirectory":
        """Scatter stations around center, nearer ones more likely, sorted by distance"""
        rng = rng or random.Random()
        count = CONFIG["station_count"] if count is None else count
        max_radius = CONFIG["station_max_radius_km"]

        stations = []
        for i in range(count):
            # Product of two uniforms favours short distances
            radius_km = rng.random() * rng.random() * max_radius
            angle = rng.random() * 2 * math.pi
            lat = center.lat + radius_km * math.cos(angle) / KM_PER_DEGREE
            lon = center.lon + radius_km * math.sin(angle) / (
                KM_PER_DEGREE * math.cos(math.radians(center.lat)))
            position = Coordinate(lat=lat, lon=lon)
            distance_m = haversine_distance(center, position)

            brand = rng.choice(BRANDS)
            if rng.random() > 0.5:
                variation = -rng.random() * 500 * (distance_m / 1000 / 3)
            else:
                variation = rng.random() * 300

            stations.append(Station(
                id=f"station-{i}",
                name=f"{brand} {rng.choice(NEIGHBORHOODS)}",
                brand=brand,
                position=position,
                price=f"${round(BASE_PRICE + variation)}",
                distance=format_distance_km(distance_m),
                address=(f"{rng.choice(STREET_TYPES)} {rng.randint(1, 150)} "
                         f"# {rng.randint(1, 100)}-{rng.randint(1, 100)}"),
                rating=round(3 + rng.random() * 2, 1),
                services=list(rng.choice(SERVICE_SETS)),
            ))

        stations.sort(key=lambda s: s.distance_km)
        return cls(stations, center)

    @classmethod
    def load(cls, path: str) -> "StationDirectory":
        """Load a catalog saved with save()"""
        try:
            with open(path) as f:
                data = json.load(f)
            user = data["user_location"]
            return cls(
                [Station.from_dict(s) for s in data["stations"]],
                Coordinate(lat=float(user["lat"]), lon=float(user["lon"])),
            )
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Could not load station catalog {path}: {e}") from e

    def save(self, path: str):
        with open(path, "w") as f:
            json.dump({
                "user_location": {"lat": self.user_location.lat, "lon": self.user_location.lon},
                "stations": [s.to_dict() for s in self],
            }, f, indent=2)


def waze_url(station: Station) -> str:
    """Deep link that opens the station in Waze"""
    return (f"https://waze.com/ul?ll={station.position.lat},{station.position.lon}"
            f"&navigate=yes")
