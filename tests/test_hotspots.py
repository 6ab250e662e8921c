import pytest

from cdr_core.config import EngineConfig
from cdr_core.hotspots import aggregate_hotspots, collect_entities, passes_near
from cdr_core.models import Conflict

from .conftest import BASE_TS, STATIONS, make_record

FIX = '00.00N/000.00E'


@pytest.fixture
def via_fix(build_flights):
    return build_flights(
        make_record('ACA101', 'WEST', 'EAST', route=[FIX]),
        make_record('WJA202', 'NRTH', 'SOTH', route=[FIX]),
    )


def _by_id(hotspots):
    return {h.entity_id: h for h in hotspots}


def test_entities(via_fix, config):
    entities = collect_entities(via_fix, config)
    assert set(entities) == {
        ('airport', 'WEST'), ('airport', 'EAST'), ('airport', 'NRTH'), ('airport', 'SOTH'), ('fix', FIX),
    }
    assert entities[('fix', FIX)] == (0.0, 0.0)


def test_pressure_without_conflicts(via_fix, config):
    hotspots = aggregate_hotspots(via_fix, [], config)

    assert hotspots[0].entity_type == 'fix'
    assert hotspots[0].traffic_density == 2
    assert hotspots[0].pressure == pytest.approx(0.6)
    assert [h.entity_id for h in hotspots[1:]] == ['EAST', 'NRTH', 'SOTH', 'WEST']
    assert all(h.traffic_density == 1 and h.pressure == pytest.approx(0.3) for h in hotspots[1:])


def test_pressure_with_conflict(via_fix, config):
    conflict = Conflict('ACA101', 'WJA202', BASE_TS + 450.0, 0.0, 0.0, '<1NM')
    by_id = _by_id(aggregate_hotspots(via_fix, [conflict], config))

    assert by_id[FIX].pressure == pytest.approx(1.0)
    assert by_id['WEST'].pressure == pytest.approx(0.7)
    assert all(0.0 <= h.pressure <= 1.0 for h in by_id.values())


def test_named_fix(build_flights):
    config = EngineConfig(stations=dict(STATIONS), fixes={'ORIGN': (0.0, 0.0)})
    flights = build_flights(make_record('ACA101', 'WEST', 'EAST', route='ORIGN'), cfg=config)

    by_id = _by_id(aggregate_hotspots(flights, [], config))
    assert by_id['ORIGN'].entity_type == 'fix'


def test_window_excludes_traffic(via_fix):
    config = EngineConfig(stations=dict(STATIONS), window_start=BASE_TS - 7200, window_end=BASE_TS - 3600)
    assert aggregate_hotspots(via_fix, [], config) == []


def test_window_clips_segments(via_fix, trajectories_for, config):
    trajectory = trajectories_for(via_fix)[0]
    # first 60 s only: still within 10 NM of the departure, far from the arrival
    window = (trajectory.start, trajectory.start + 60)

    assert passes_near(trajectory, 0.0, -1.0, 10.0, window)
    assert not passes_near(trajectory, 0.0, 1.0, 10.0, window)
    assert not passes_near(trajectory, 0.0, 0.0, 10.0, window)


def test_no_flights(config):
    assert aggregate_hotspots([], [], config) == []
