"""
Shared fixtures. Stations sit on the equator / prime meridian so that routes
are exact great circles and crossing times are easy to reason about:
1 degree of arc = 60.04 NM, so at 480 kt every station is ~450 s from (0, 0).
"""
import pytest

from cdr_core.config import EngineConfig
from cdr_core.flight_processing import process_flight_records
from cdr_core.trajectory import TrajectoryCache

BASE_TS = 1699999200  # 2023-11-14 22:00:00 UTC

STATIONS = {
    'WEST': (0.0, -1.0),
    'EAST': (0.0, 1.0),
    'NRTH': (1.0, 0.0),
    'SOTH': (-1.0, 0.0),
    'FARW': (10.0, -1.0),
    'FARE': (10.0, 1.0),
}


def make_record(acid, departure, arrival, **overrides):
    record = {
        'acid': acid,
        'departure': departure,
        'arrival': arrival,
        'altitude': 35000,
        'speed': 480,
        'departure_time': BASE_TS,
        'passengers': 150,
        'is_cargo': False,
    }
    record.update(overrides)
    return record


@pytest.fixture
def config():
    return EngineConfig(stations=dict(STATIONS))


@pytest.fixture
def build_flights(config):
    def _build(*records, cfg=None):
        flights, rejected = process_flight_records(list(records), cfg or config)
        assert not rejected, rejected
        return flights
    return _build


@pytest.fixture
def trajectories_for(config):
    def _trajectories(flights, cfg=None):
        cache = TrajectoryCache(cfg or config)
        return [cache.get(f) for f in flights]
    return _trajectories


@pytest.fixture
def crossing_records():
    """Two flights at the same level crossing over (0, 0) at the same moment."""
    return [
        make_record('ACA101', 'WEST', 'EAST', passengers=180),
        make_record('WJA202', 'NRTH', 'SOTH', passengers=90),
    ]


@pytest.fixture
def triangle_records():
    """Three flights all over (0, 0) at the same moment: every pair conflicts."""
    return [
        make_record('AAA1', 'WEST', 'EAST', passengers=100),
        make_record('BBB2', 'NRTH', 'SOTH', passengers=150),
        make_record('CCC3', 'EAST', 'WEST', passengers=200),
    ]
