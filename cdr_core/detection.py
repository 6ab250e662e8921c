# cdr_core/detection.py

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from itertools import combinations
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import EngineConfig
from .models import SEVERITY_ADVISORY, SEVERITY_CRITICAL, SEVERITY_MODERATE, Conflict
from .trajectory import Trajectory, haversine_nm, project_nm

logger = logging.getLogger(__name__)


def classify_severity(distance_nm: float, config: EngineConfig) -> Optional[str]:
    """
    Band a closest-approach distance. Each band includes its lower bound and
    excludes its upper bound; None means the pair is not in conflict.
    """
    if distance_nm < config.critical_threshold_nm:
        return SEVERITY_CRITICAL
    if distance_nm < config.moderate_threshold_nm:
        return SEVERITY_MODERATE
    if distance_nm < config.min_horizontal_separation_nm:
        return SEVERITY_ADVISORY
    return None


def closest_approach(a: Trajectory, b: Trajectory) -> Optional[Tuple[float, float]]:
    """
    Time and horizontal distance (NM) of closest approach while both are airborne.

    On every interval between the merged breakpoints of the two trajectories
    both flights move linearly, so the relative position is linear too and
    its minimum has a closed form. Returns None if the windows do not overlap.
    """
    start = max(a.start, b.start)
    end = min(a.end, b.end)
    if start > end:
        return None

    breakpoints = sorted({start, end, *(t for t in a.times if start < t < end),
                          *(t for t in b.times if start < t < end)})
    if len(breakpoints) == 1:
        breakpoints = breakpoints * 2

    best_time, best_sq = None, math.inf
    for t0, t1 in zip(breakpoints, breakpoints[1:]):
        a0, a1 = a.position_at(t0), a.position_at(t1)
        b0, b1 = b.position_at(t0), b.position_at(t1)
        ref_lat = (a0[0] + a1[0] + b0[0] + b1[0]) / 4.0

        ax0, ay0 = project_nm(a0[0], a0[1], ref_lat)
        bx0, by0 = project_nm(b0[0], b0[1], ref_lat)
        ax1, ay1 = project_nm(a1[0], a1[1], ref_lat)
        bx1, by1 = project_nm(b1[0], b1[1], ref_lat)

        rx, ry = ax0 - bx0, ay0 - by0
        dx, dy = (ax1 - bx1) - rx, (ay1 - by1) - ry
        speed_sq = dx * dx + dy * dy
        s = 0.0 if speed_sq == 0 else min(1.0, max(0.0, -(rx * dx + ry * dy) / speed_sq))

        px, py = rx + s * dx, ry + s * dy
        dist_sq = px * px + py * py
        if dist_sq < best_sq:
            best_sq = dist_sq
            best_time = min(t1, t0 + s * (t1 - t0))

    pa, pb = a.position_at(best_time), b.position_at(best_time)
    return best_time, haversine_nm(pa[0], pa[1], pb[0], pb[1])


def check_pair(a: Trajectory, b: Trajectory, config: EngineConfig) -> Optional[Conflict]:
    """Conflict between two trajectories, or None if separation holds."""
    vertical_ft = abs(a.altitude - b.altitude)
    if vertical_ft >= config.min_vertical_separation_ft:
        return None

    approach = closest_approach(a, b)
    if approach is None:
        return None
    tca, distance_nm = approach

    severity = classify_severity(distance_nm, config)
    if severity is None:
        return None

    first, second = (a, b) if a.acid < b.acid else (b, a)
    return Conflict(
        acid_a=first.acid,
        acid_b=second.acid,
        time=tca,
        distance_nm=distance_nm,
        vertical_ft=vertical_ft,
        severity=severity,
    )


def _scan_pairs(pairs: Iterable[Tuple[Trajectory, Trajectory]], config: EngineConfig) -> List[Conflict]:
    found = []
    for a, b in pairs:
        conflict = check_pair(a, b, config)
        if conflict is not None:
            found.append(conflict)
    return found


def detect_conflicts(trajectories: Sequence[Trajectory], config: EngineConfig) -> List[Conflict]:
    """
    All pairwise conflicts, each unordered pair checked once.

    Sorted by time of closest approach, then acid pair, so repeated calls on
    the same trajectories return identical lists whatever the worker count.
    """
    ordered = sorted(trajectories, key=lambda t: t.acid)
    pairs = list(combinations(ordered, 2))

    workers = config.detection_workers
    if workers > 1 and len(pairs) > workers:
        chunk_size = math.ceil(len(pairs) / workers)
        chunks = [pairs[i:i + chunk_size] for i in range(0, len(pairs), chunk_size)]
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda chunk: _scan_pairs(chunk, config), chunks))
        conflicts = [c for chunk_result in results for c in chunk_result]
    else:
        conflicts = _scan_pairs(pairs, config)

    conflicts.sort(key=lambda c: c.sort_key)
    logger.debug(f"Checked {len(pairs)} pairs across {len(ordered)} trajectories: {len(conflicts)} conflicts")
    return conflicts
