import pytest

from cdr_core.config import EngineConfig
from cdr_core.detection import check_pair, classify_severity, closest_approach, detect_conflicts

from .conftest import BASE_TS, STATIONS, make_record

CROSSING_TIME = BASE_TS + 60.0405 / 480 * 3600


def _offset_config(offset_deg, **overrides):
    """Two parallel west-east tracks offset_deg apart in latitude, flown straight."""
    stations = dict(STATIONS, WST2=(offset_deg, -1.0), EST2=(offset_deg, 1.0))
    return EngineConfig(stations=stations, route_geometry='straight', **overrides)


@pytest.mark.parametrize('distance, expected', [
    (0.0, '<1NM'),
    (0.999, '<1NM'),
    (1.0, '1-3NM'),
    (2.999, '1-3NM'),
    (3.0, '3-5NM'),
    (4.999, '3-5NM'),
    (5.0, None),
    (12.0, None),
])
def test_severity_bands(distance, expected):
    assert classify_severity(distance, EngineConfig()) == expected


def test_crossing_pair_conflicts(crossing_records, build_flights, trajectories_for, config):
    conflicts = detect_conflicts(trajectories_for(build_flights(*crossing_records)), config)

    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert conflict.pair == ('ACA101', 'WJA202')
    assert conflict.severity == '<1NM'
    assert conflict.distance_nm == pytest.approx(0.0, abs=0.01)
    assert conflict.time == pytest.approx(CROSSING_TIME, abs=1.0)
    assert conflict.vertical_ft == 0


@pytest.mark.parametrize('offset_deg, severity', [(0.03, '1-3NM'), (0.06, '3-5NM')])
def test_parallel_tracks_inside_minimum(build_flights, trajectories_for, offset_deg, severity):
    cfg = _offset_config(offset_deg)
    flights = build_flights(make_record('AAA1', 'WEST', 'EAST'), make_record('BBB2', 'WST2', 'EST2'), cfg=cfg)

    conflicts = detect_conflicts(trajectories_for(flights, cfg), cfg)

    assert [c.severity for c in conflicts] == [severity]
    assert conflicts[0].distance_nm == pytest.approx(offset_deg * 60.0405, rel=1e-3)


def test_separation_at_minimum_is_not_a_conflict(build_flights, trajectories_for):
    cfg = _offset_config(0.1)  # ~6 NM
    flights = build_flights(make_record('AAA1', 'WEST', 'EAST'), make_record('BBB2', 'WST2', 'EST2'), cfg=cfg)

    assert detect_conflicts(trajectories_for(flights, cfg), cfg) == []


def test_vertical_separation_clears(build_flights, trajectories_for, config):
    flights = build_flights(
        make_record('ACA101', 'WEST', 'EAST', altitude=35000),
        make_record('WJA202', 'NRTH', 'SOTH', altitude=36000),
    )
    assert detect_conflicts(trajectories_for(flights), config) == []

    flights = build_flights(
        make_record('ACA101', 'WEST', 'EAST', altitude=35000),
        make_record('WJA202', 'NRTH', 'SOTH', altitude=35500),
    )
    conflicts = detect_conflicts(trajectories_for(flights), config)
    assert len(conflicts) == 1
    assert conflicts[0].vertical_ft == 500


def test_disjoint_windows_never_conflict(build_flights, trajectories_for, config):
    flights = build_flights(
        make_record('ACA101', 'WEST', 'EAST'),
        make_record('WJA202', 'NRTH', 'SOTH', departure_time=BASE_TS + 7200),
    )
    a, b = trajectories_for(flights)

    assert closest_approach(a, b) is None
    assert check_pair(a, b, config) is None


def test_far_apart_tracks(build_flights, trajectories_for, config):
    flights = build_flights(make_record('AAA1', 'WEST', 'EAST'), make_record('BBB2', 'FARW', 'FARE'))
    assert detect_conflicts(trajectories_for(flights), config) == []


def test_detection_is_idempotent_and_ordered(triangle_records, build_flights, trajectories_for, config):
    trajectories = trajectories_for(build_flights(*triangle_records))

    first = detect_conflicts(trajectories, config)
    second = detect_conflicts(list(reversed(trajectories)), config)

    assert first == second
    assert len(first) == 3
    assert [c.sort_key for c in first] == sorted(c.sort_key for c in first)
    assert all(c.acid_a < c.acid_b for c in first)


def test_parallel_detection_matches_serial(build_flights, trajectories_for):
    records = [
        make_record('AAA1', 'WEST', 'EAST'),
        make_record('BBB2', 'NRTH', 'SOTH'),
        make_record('CCC3', 'EAST', 'WEST'),
        make_record('DDD4', 'SOTH', 'NRTH', departure_time=BASE_TS + 120),
        make_record('EEE5', 'FARW', 'FARE'),
        make_record('FFF6', 'FARE', 'FARW'),
    ]
    serial_cfg = EngineConfig(stations=dict(STATIONS))
    parallel_cfg = EngineConfig(stations=dict(STATIONS), detection_workers=4)
    flights = build_flights(*records)

    serial = detect_conflicts(trajectories_for(flights, serial_cfg), serial_cfg)
    parallel = detect_conflicts(trajectories_for(flights, parallel_cfg), parallel_cfg)

    assert serial == parallel
    assert {c.pair for c in serial} >= {('EEE5', 'FFF6'), ('AAA1', 'CCC3')}
