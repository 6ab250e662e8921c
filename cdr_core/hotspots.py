# cdr_core/hotspots.py

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import EngineConfig
from .models import Conflict, Flight, Hotspot
from .trajectory import Trajectory, TrajectoryCache, is_station, project_nm, resolve_waypoint

logger = logging.getLogger(__name__)

ENTITY_AIRPORT = 'airport'
ENTITY_FIX = 'fix'


def collect_entities(flights: Iterable[Flight], config: EngineConfig) -> Dict[Tuple[str, str], Tuple[float, float]]:
    """Airports served by the flight set plus every non-station route waypoint."""
    entities = {}
    for flight in flights:
        for code in (flight.departure, flight.arrival):
            entities[(ENTITY_AIRPORT, code)] = tuple(config.stations[code])
        for token in flight.route:
            entity_type = ENTITY_AIRPORT if is_station(token, config) else ENTITY_FIX
            entities[(entity_type, token)] = resolve_waypoint(token, config)
    return entities


def _segment_point_distance_nm(lat0, lon0, lat1, lon1, lat, lon) -> float:
    """Distance from a point to a lat/lon segment, in the point's local plane."""
    ax, ay = project_nm(lat0, lon0, lat)
    bx, by = project_nm(lat1, lon1, lat)
    px, py = project_nm(lat, lon, lat)
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    s = 0.0 if length_sq == 0 else min(1.0, max(0.0, ((px - ax) * dx + (py - ay) * dy) / length_sq))
    return math.hypot(ax + s * dx - px, ay + s * dy - py)


def passes_near(trajectory: Trajectory, lat: float, lon: float, radius_nm: float,
                window: Tuple[float, float]) -> bool:
    """True if the flight comes within radius_nm of (lat, lon) while airborne inside window."""
    w_start, w_end = window
    for t0, t1, lat0, lon0, lat1, lon1 in trajectory.segments():
        if t1 < w_start or t0 > w_end:
            continue
        # clip the segment to the window
        if t0 < w_start or t1 > w_end:
            c0, c1 = max(t0, w_start), min(t1, w_end)
            (lat0, lon0, _), (lat1, lon1, _) = trajectory.position_at(c0), trajectory.position_at(c1)
        if _segment_point_distance_nm(lat0, lon0, lat1, lon1, lat, lon) <= radius_nm:
            return True
    return False


def analysis_window(trajectories: Sequence[Trajectory], config: EngineConfig) -> Optional[Tuple[float, float]]:
    start, end = config.window_bounds
    if trajectories:
        start = min(t.start for t in trajectories) if start is None else start
        end = max(t.end for t in trajectories) if end is None else end
    if start is None or end is None:
        return None
    return start, end


def aggregate_hotspots(flights: Sequence[Flight], conflicts: Sequence[Conflict], config: EngineConfig,
                       cache: Optional[TrajectoryCache] = None) -> List[Hotspot]:
    """
    Traffic density and conflict pressure per airport / fix, from the final state.

    pressure = density_weight * density / max_density
             + conflict_weight * (flights in a conflict / density)
    Entities nobody passes are left out.
    """
    if not flights:
        return []

    cache = cache or TrajectoryCache(config)
    trajectories = [cache.get(f) for f in flights]
    window = analysis_window(trajectories, config)
    entities = collect_entities(flights, config)
    conflicted: Set[str] = {acid for c in conflicts for acid in c.pair}

    traffic: Dict[Tuple[str, str], List[str]] = {}
    for key, (lat, lon) in entities.items():
        acids = [t.acid for t in trajectories if passes_near(t, lat, lon, config.hotspot_radius_nm, window)]
        if acids:
            traffic[key] = acids

    if not traffic:
        logger.info("No traffic inside the analysis window, no hotspots")
        return []

    max_density = max(len(acids) for acids in traffic.values())
    hotspots = []
    for (entity_type, entity_id), acids in traffic.items():
        density = len(acids)
        involved = sum(1 for acid in acids if acid in conflicted)
        pressure = config.density_weight * density / max_density + config.conflict_weight * involved / density
        hotspots.append(Hotspot(
            entity_type=entity_type,
            entity_id=entity_id,
            traffic_density=density,
            pressure=round(min(1.0, pressure), 4),
        ))

    hotspots.sort(key=lambda h: (-h.pressure, -h.traffic_density, h.entity_type, h.entity_id))
    logger.info(f"Aggregated {len(hotspots)} hotspots from {len(entities)} entities")
    return hotspots
