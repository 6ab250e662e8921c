# cdr_core/report.py

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

import pandas as pd

from .config import EngineConfig, get_flight_table_schema
from .models import SEVERITY_BANDS, Conflict, Flight, Hotspot, RejectedRecord
from .resolution import ResolutionOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisReport:
    summary: Dict[str, Any]
    charts: Dict[str, List[Dict[str, Any]]]
    tables: Dict[str, List[Dict[str, Any]]]

    def to_dict(self) -> Dict[str, Any]:
        return {'summary': dict(self.summary), 'charts': dict(self.charts), 'tables': dict(self.tables)}


def conflicts_dataframe(conflicts: Sequence[Conflict]) -> pd.DataFrame:
    df = pd.DataFrame(
        [(c.acid_a, c.acid_b, c.time, c.distance_nm, c.severity) for c in conflicts],
        columns=['acid_a', 'acid_b', 'time', 'distance_nm', 'severity'],
    )
    df['time_utc'] = pd.to_datetime(df['time'].astype(float), unit='s', utc=True)
    return df


def conflicts_by_hour(df: pd.DataFrame) -> List[Dict[str, int]]:
    if df.empty:
        return []
    counts = df.groupby(df['time_utc'].dt.hour).size().sort_index()
    return [{'hour': int(hour), 'count': int(count)} for hour, count in counts.items()]


def severity_distribution(df: pd.DataFrame) -> List[Dict[str, Any]]:
    counts = df['severity'].value_counts().reindex(list(SEVERITY_BANDS), fill_value=0)
    return [{'name': name, 'value': int(counts[name])} for name in SEVERITY_BANDS]


def top_aircraft(df: pd.DataFrame, limit: int) -> List[Dict[str, Any]]:
    if df.empty:
        return []
    appearances = pd.concat([df['acid_a'], df['acid_b']], ignore_index=True)
    ranking = appearances.value_counts().rename_axis('acid').reset_index(name='conflicts')
    ranking = ranking.sort_values(by=['conflicts', 'acid'], ascending=[False, True]).head(limit)
    return [{'acid': str(row.acid), 'conflicts': int(row.conflicts)} for row in ranking.itertuples(index=False)]


def flights_table(flights: Sequence[Flight]) -> List[Dict[str, Any]]:
    schema = get_flight_table_schema()
    rows = [{
        'acid': f.acid,
        'plane_type': f.plane_type,
        'departure': f.departure,
        'arrival': f.arrival,
        'altitude': int(f.altitude),
        'speed': float(f.speed),
        'passengers': int(f.passengers),
        'is_cargo': bool(f.is_cargo),
        'departure_time': f.effective_departure.isoformat(),
        'delay_min': float(f.delay_min),
    } for f in flights]
    if not rows:
        return schema.to_dict('records')
    return [{col: row[col] for col in schema.columns} for row in rows]


def assemble_report(outcome: ResolutionOutcome, hotspots: Sequence[Hotspot],
                    rejected: Sequence[RejectedRecord], config: EngineConfig) -> AnalysisReport:
    """
    Project the finished run into the dashboard contract. Charts are built
    from the conflict history (every pair that was ever in conflict), the
    tables from the final state.
    """
    history = conflicts_dataframe(outcome.conflict_history)
    final_flights = outcome.final_snapshot.flights

    summary = {
        'total_flights': len(final_flights),
        'total_conflicts': len(outcome.conflict_history),
        'total_passengers': int(sum(f.passengers for f in final_flights)),
        'total_hotspots': len(hotspots),
        'rejected_records': len(rejected),
        'remaining_conflicts': len(outcome.final_conflicts),
        'unresolved_conflicts': sum(1 for c in outcome.final_conflicts if c.pair in outcome.unresolvable),
        'iterations': outcome.iterations,
        'iteration_cap_reached': outcome.cap_reached,
    }

    charts = {
        'conflicts_by_hour': conflicts_by_hour(history),
        'severity_distribution': severity_distribution(history),
        'top_aircraft': top_aircraft(history, config.top_aircraft_limit),
    }

    open_conflicts = []
    for conflict in outcome.final_conflicts:
        entry = conflict.to_dict()
        entry['status'] = 'unresolvable' if conflict.pair in outcome.unresolvable else 'open'
        open_conflicts.append(entry)

    tables = {
        'hotspots': [h.to_dict() for h in hotspots],
        'flights': flights_table(final_flights),
        'actions': [a.to_dict() for a in outcome.actions],
        'conflicts': open_conflicts,
        'rejected': [r.to_dict() for r in rejected],
    }

    logger.info(
        f"Report: {summary['total_flights']} flights, {summary['total_conflicts']} conflicts "
        f"({summary['remaining_conflicts']} open), {summary['total_hotspots']} hotspots, "
        f"{len(tables['actions'])} actions"
    )
    return AnalysisReport(summary=summary, charts=charts, tables=tables)
