# cdr_core/engine.py

import logging
from typing import Any, Dict

from .config import resolve_config
from .flight_processing import process_flight_records
from .hotspots import aggregate_hotspots
from .report import AnalysisReport, assemble_report
from .resolution import ResolutionScheduler
from .trajectory import TrajectoryCache

logger = logging.getLogger(__name__)


def run_analysis(records: Any, config: Any = None) -> AnalysisReport:
    """
    Full pipeline: validate records, resolve conflicts, aggregate hotspots on
    the final state and assemble the report.

    Only ConfigurationError escapes; bad records, unresolvable pairs and the
    iteration cap all end up in the report.
    """
    config = resolve_config(config)
    flights, rejected = process_flight_records(records, config)
    logger.info(f"Starting analysis of {len(flights)} flights ({len(rejected)} rejected)")

    cache = TrajectoryCache(config)
    outcome = ResolutionScheduler(flights, config, cache=cache).run()
    hotspots = aggregate_hotspots(outcome.final_snapshot.flights, outcome.final_conflicts, config, cache=cache)
    return assemble_report(outcome, hotspots, rejected, config)


def analyze(records: Any, config: Any = None) -> Dict[str, Any]:
    """Same as run_analysis, returned as the plain dict the dashboard consumes."""
    return run_analysis(records, config).to_dict()
