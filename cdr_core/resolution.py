"""
Resolution scheduler.

Detect -> select one conflict -> mitigate one flight -> detect again, until
nothing is left to resolve or the iteration cap is hit. Every applied
mitigation produces a new FleetSnapshot and one ResolutionAction.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence, Set, Tuple

from .config import EngineConfig
from .detection import check_pair, detect_conflicts
from .exceptions import IterationCapReached, UnresolvableConflict
from .models import (
    ACTION_ALTITUDE_CHANGE,
    ACTION_DELAY,
    SEVERITY_RANK,
    Conflict,
    FleetSnapshot,
    Flight,
    ResolutionAction,
)
from .trajectory import TrajectoryCache

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]


class SchedulerState(Enum):
    DETECTING = 'detecting'
    SELECTING = 'selecting'
    MITIGATING = 'mitigating'
    DONE = 'done'


class MitigationLedger:
    """Values already tried per conflicting pair, so no mitigation is ever repeated."""

    def __init__(self):
        self._attempted: Dict[Pair, Set[Tuple[str, str, float]]] = defaultdict(set)

    def record(self, pair: Pair, acid: str, kind: str, value: float) -> None:
        self._attempted[pair].add((acid, kind, float(value)))

    def was_tried(self, pair: Pair, acid: str, kind: str, value: float) -> bool:
        return (acid, kind, float(value)) in self._attempted.get(pair, ())

    def tried_values(self, pair: Pair, acid: str, kind: str) -> Set[float]:
        return {v for a, k, v in self._attempted.get(pair, ()) if a == acid and k == kind}


def select_conflict(conflicts: Sequence[Conflict]) -> Conflict:
    """Most severe first, then earliest closest approach, then smallest acid pair."""
    return min(conflicts, key=lambda c: (SEVERITY_RANK[c.severity], c.time, c.acid_a, c.acid_b))


def mitigation_order(conflict: Conflict, snapshot: FleetSnapshot) -> List[Flight]:
    """Cargo before passenger flights, then fewer passengers, then acid."""
    flights = [snapshot.get(acid) for acid in conflict.pair]
    return sorted(flights, key=lambda f: (not f.is_cargo, f.passengers, f.acid))


@dataclass(frozen=True)
class ResolutionOutcome:
    final_snapshot: FleetSnapshot
    snapshots: Tuple[FleetSnapshot, ...]
    actions: Tuple[ResolutionAction, ...]
    conflict_history: Tuple[Conflict, ...]  # first detection of every pair, sorted
    final_conflicts: Tuple[Conflict, ...]
    unresolvable: FrozenSet[Pair]
    iterations: int
    cap_reached: bool


class ResolutionScheduler:

    def __init__(self, flights: Sequence[Flight], config: EngineConfig, cache: Optional[TrajectoryCache] = None):
        self.config = config
        self.cache = cache or TrajectoryCache(config)
        self.snapshots: List[FleetSnapshot] = [FleetSnapshot(iteration=0, flights=tuple(flights))]
        self.actions: List[ResolutionAction] = []
        self.ledger = MitigationLedger()
        self.unresolvable: Set[Pair] = set()
        self.history: Dict[Pair, Conflict] = {}
        self.current_conflicts: List[Conflict] = []
        self.iteration = 0
        self.cap_reached = False
        self.state = SchedulerState.DETECTING

    @property
    def snapshot(self) -> FleetSnapshot:
        return self.snapshots[-1]

    def detect(self) -> List[Conflict]:
        self.state = SchedulerState.DETECTING
        trajectories = [self.cache.get(f) for f in self.snapshot]
        conflicts = detect_conflicts(trajectories, self.config)
        for conflict in conflicts:
            self.history.setdefault(conflict.pair, conflict)
        self.current_conflicts = conflicts
        return conflicts

    def step(self) -> Optional[ResolutionAction]:
        """
        One Detecting -> Selecting -> Mitigating pass.

        Returns the applied action, or None when the scheduler finished or the
        selected pair turned out unresolvable. Raises IterationCapReached when
        conflicts remain but the iteration budget is spent.
        """
        if self.state is SchedulerState.DONE:
            return None

        candidates = [c for c in self.detect() if c.pair not in self.unresolvable]
        if not candidates:
            self.state = SchedulerState.DONE
            return None
        if self.iteration >= self.config.max_iterations:
            self.state = SchedulerState.DONE
            self.cap_reached = True
            raise IterationCapReached(self.iteration, len(candidates))

        self.state = SchedulerState.SELECTING
        target = select_conflict(candidates)
        self.iteration += 1
        logger.debug(
            f"Iteration {self.iteration}: resolving {target.acid_a}/{target.acid_b} "
            f"({target.severity}, {target.distance_nm:.2f} NM), {len(candidates)} open"
        )

        self.state = SchedulerState.MITIGATING
        try:
            action = self.mitigate(target)
        except UnresolvableConflict as e:
            logger.warning(f"Iteration {self.iteration}: {e}; pair excluded from further resolution")
            self.unresolvable.add(target.pair)
            self.state = SchedulerState.DETECTING
            return None

        self.actions.append(action)
        self.state = SchedulerState.DETECTING
        return action

    def run(self) -> ResolutionOutcome:
        logger.info(f"Resolving conflicts for {len(self.snapshot)} flights (cap {self.config.max_iterations})")
        while self.state is not SchedulerState.DONE:
            try:
                self.step()
            except IterationCapReached as e:
                logger.warning(str(e))

        outcome = ResolutionOutcome(
            final_snapshot=self.snapshot,
            snapshots=tuple(self.snapshots),
            actions=tuple(self.actions),
            conflict_history=tuple(sorted(self.history.values(), key=lambda c: c.sort_key)),
            final_conflicts=tuple(self.current_conflicts),
            unresolvable=frozenset(self.unresolvable),
            iterations=self.iteration,
            cap_reached=self.cap_reached,
        )
        logger.info(
            f"Resolution done after {outcome.iterations} iterations: {len(outcome.actions)} actions, "
            f"{len(outcome.conflict_history)} conflicts seen, {len(outcome.final_conflicts)} still open"
        )
        return outcome

    # -- mitigation -------------------------------------------------------

    def mitigate(self, conflict: Conflict) -> ResolutionAction:
        for flight in mitigation_order(conflict, self.snapshot):
            other = self.snapshot.get(conflict.other(flight.acid))
            action = self._try_delay(flight, other, conflict.pair) or self._try_altitude(flight, other, conflict.pair)
            if action is not None:
                return action
        raise UnresolvableConflict(conflict.pair)

    def _clears(self, candidate: Flight, other: Flight) -> bool:
        return check_pair(self.cache.get(candidate), self.cache.get(other), self.config) is None

    def _delay_candidates(self, flight: Flight) -> Iterator[float]:
        step = self.config.delay_step_min
        k = 1
        while flight.delay_min + k * step <= self.config.max_delay_min + 1e-9:
            yield round(flight.delay_min + k * step, 6)
            k += 1

    def _altitude_candidates(self, flight: Flight, exclude: Set[float] = frozenset()) -> Iterator[int]:
        """Up one step, down one step, up two... within bounds, minus anything in exclude."""
        for k in range(1, self.config.max_altitude_steps + 1):
            for sign in (1, -1):
                altitude = flight.altitude + sign * k * self.config.altitude_step_ft
                if altitude in exclude:
                    continue
                if self.config.min_altitude_ft <= altitude <= self.config.max_altitude_ft:
                    yield altitude

    def _try_delay(self, flight: Flight, other: Flight, pair: Pair) -> Optional[ResolutionAction]:
        self.ledger.record(pair, flight.acid, ACTION_DELAY, flight.delay_min)
        for delay in self._delay_candidates(flight):
            if self.ledger.was_tried(pair, flight.acid, ACTION_DELAY, delay):
                continue
            self.ledger.record(pair, flight.acid, ACTION_DELAY, delay)
            candidate = flight.delayed(delay)
            if self._clears(candidate, other):
                self._apply(candidate)
                increment = round(delay - flight.delay_min, 6)
                logger.debug(f"Delaying {flight.acid} by {increment} min against {other.acid}")
                return ResolutionAction(
                    iter=self.iteration, acid=flight.acid, action=ACTION_DELAY,
                    against=other.acid, delay_min=increment,
                )
        return None

    def _try_altitude(self, flight: Flight, other: Flight, pair: Pair) -> Optional[ResolutionAction]:
        self.ledger.record(pair, flight.acid, ACTION_ALTITUDE_CHANGE, flight.altitude)
        tried = self.ledger.tried_values(pair, flight.acid, ACTION_ALTITUDE_CHANGE)
        for altitude in self._altitude_candidates(flight, exclude=tried):
            self.ledger.record(pair, flight.acid, ACTION_ALTITUDE_CHANGE, altitude)
            candidate = flight.at_altitude(altitude)
            if self._clears(candidate, other):
                self._apply(candidate)
                logger.debug(f"Moving {flight.acid} from {flight.altitude} ft to {altitude} ft against {other.acid}")
                return ResolutionAction(
                    iter=self.iteration, acid=flight.acid, action=ACTION_ALTITUDE_CHANGE,
                    against=other.acid, from_alt=flight.altitude, to_alt=altitude,
                )
        return None

    def _apply(self, flight: Flight) -> None:
        self.snapshots.append(self.snapshot.with_flight(flight, iteration=self.iteration))
