import json
import random

import pytest

from refuel.exceptions import CatalogError
from refuel.geo import haversine_distance
from refuel.stations import StationDirectory, waze_url

from conftest import BOGOTA


@pytest.fixture
def generated():
    return StationDirectory.generate(BOGOTA, rng=random.Random(42))


def test_generate_catalog(generated):
    stations = list(generated)

    assert len(generated) == 15
    assert generated.user_location == BOGOTA
    assert sorted(s.id for s in stations) == sorted(f"station-{i}" for i in range(15))
    distances = [s.distance_km for s in stations]
    assert distances == sorted(distances)
    for station in stations:
        assert haversine_distance(BOGOTA, station.position) <= 5000 + 1
        assert station.distance.endswith(" km")
        assert station.price.startswith("$")
        assert 3 <= station.rating <= 5


def test_generate_is_reproducible():
    a = [s.to_dict() for s in StationDirectory.generate(BOGOTA, count=5, rng=random.Random(3))]
    b = [s.to_dict() for s in StationDirectory.generate(BOGOTA, count=5, rng=random.Random(3))]
    assert a == b


def test_find_by_id(directory, station):
    assert directory.find_by_id("station-0") is station
    assert directory.find_by_id("station-1") is None


def test_distance_label_parsed(station):
    assert station.distance_km == pytest.approx(1.2)


def test_save_and_load(tmp_path, generated):
    path = tmp_path / "stations.json"

    generated.save(str(path))
    loaded = StationDirectory.load(str(path))

    assert [s.to_dict() for s in loaded] == [s.to_dict() for s in generated]
    assert loaded.user_location == BOGOTA


def test_load_missing_file(tmp_path):
    with pytest.raises(CatalogError):
        StationDirectory.load(str(tmp_path / "missing.json"))


def test_load_malformed_catalog(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"stations": [{"id": "a"}]}))

    with pytest.raises(CatalogError):
        StationDirectory.load(str(path))


def test_waze_url(station):
    assert waze_url(station) == "https://waze.com/ul?ll=4.62,-74.07&navigate=yes"
