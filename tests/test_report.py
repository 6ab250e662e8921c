import pandas as pd

from cdr_core.models import Conflict
from cdr_core.report import conflicts_by_hour, conflicts_dataframe, severity_distribution, top_aircraft


def _at(iso):
    return pd.Timestamp(iso).timestamp()


CONFLICTS = [
    Conflict('AAA', 'BBB', _at('2023-11-14T22:10:00Z'), 0.4, 0.0, '<1NM'),
    Conflict('AAA', 'CCC', _at('2023-11-14T22:30:00Z'), 2.5, 0.0, '1-3NM'),
    Conflict('BBB', 'CCC', _at('2023-11-14T23:05:00Z'), 0.9, 500.0, '<1NM'),
    Conflict('CCC', 'DDD', _at('2023-11-15T01:45:00Z'), 1.5, 0.0, '1-3NM'),
]


def test_conflicts_by_hour():
    assert conflicts_by_hour(conflicts_dataframe(CONFLICTS)) == [
        {'hour': 1, 'count': 1},
        {'hour': 22, 'count': 2},
        {'hour': 23, 'count': 1},
    ]


def test_severity_distribution_lists_every_band():
    distribution = severity_distribution(conflicts_dataframe(CONFLICTS))

    assert distribution == [
        {'name': '<1NM', 'value': 2},
        {'name': '1-3NM', 'value': 2},
        {'name': '3-5NM', 'value': 0},
    ]
    assert sum(d['value'] for d in distribution) == len(CONFLICTS)


def test_top_aircraft_breaks_ties_by_acid():
    assert top_aircraft(conflicts_dataframe(CONFLICTS), limit=10) == [
        {'acid': 'CCC', 'conflicts': 3},
        {'acid': 'AAA', 'conflicts': 2},
        {'acid': 'BBB', 'conflicts': 2},
        {'acid': 'DDD', 'conflicts': 1},
    ]
    assert len(top_aircraft(conflicts_dataframe(CONFLICTS), limit=2)) == 2


def test_empty_history():
    df = conflicts_dataframe([])

    assert conflicts_by_hour(df) == []
    assert top_aircraft(df, limit=10) == []
    assert [d['value'] for d in severity_distribution(df)] == [0, 0, 0]
