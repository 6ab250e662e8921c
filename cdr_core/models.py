# cdr_core/models.py

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, Optional, Tuple

import pandas as pd

SEVERITY_CRITICAL = '<1NM'
SEVERITY_MODERATE = '1-3NM'
SEVERITY_ADVISORY = '3-5NM'
SEVERITY_BANDS = (SEVERITY_CRITICAL, SEVERITY_MODERATE, SEVERITY_ADVISORY)
# lower rank = more severe
SEVERITY_RANK = {name: rank for rank, name in enumerate(SEVERITY_BANDS)}

ACTION_DELAY = 'delay'
ACTION_ALTITUDE_CHANGE = 'altitude_change'


@dataclass(frozen=True)
class Flight:
    acid: str
    departure: str  # station code
    arrival: str
    altitude: int  # effective cruise altitude (ft)
    speed: float  # ground speed (kt)
    scheduled_departure: pd.Timestamp  # UTC
    passengers: int = 0
    is_cargo: bool = False
    plane_type: str = ''
    route: Tuple[str, ...] = ()  # intermediate waypoint tokens
    delay_min: float = 0.0  # accumulated delay
    filed_altitude: Optional[int] = None

    def __post_init__(self):
        if self.filed_altitude is None:
            object.__setattr__(self, 'filed_altitude', self.altitude)

    @property
    def effective_departure(self) -> pd.Timestamp:
        return self.scheduled_departure + pd.Timedelta(minutes=self.delay_min)

    def delayed(self, delay_min: float) -> Flight:
        return replace(self, delay_min=delay_min)

    def at_altitude(self, altitude: int) -> Flight:
        return replace(self, altitude=altitude)


@dataclass(frozen=True)
class Conflict:
    acid_a: str  # acid_a < acid_b
    acid_b: str
    time: float  # closest approach, epoch seconds UTC
    distance_nm: float
    vertical_ft: float
    severity: str

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.acid_a, self.acid_b)

    @property
    def sort_key(self):
        return (self.time, self.acid_a, self.acid_b)

    def involves(self, acid: str) -> bool:
        return acid in self.pair

    def other(self, acid: str) -> str:
        return self.acid_b if acid == self.acid_a else self.acid_a

    def to_dict(self) -> Dict[str, Any]:
        return {
            'acid_a': self.acid_a,
            'acid_b': self.acid_b,
            'time': pd.Timestamp(self.time, unit='s', tz='UTC').isoformat(),
            'distance_nm': round(self.distance_nm, 3),
            'vertical_ft': round(self.vertical_ft, 1),
            'severity': self.severity,
        }


@dataclass(frozen=True)
class Hotspot:
    entity_type: str  # 'airport' or 'fix'
    entity_id: str
    traffic_density: int
    pressure: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'traffic_density': self.traffic_density,
            'pressure': self.pressure,
        }


@dataclass(frozen=True)
class ResolutionAction:
    iter: int
    acid: str
    action: str
    against: str
    delay_min: Optional[float] = None  # increment applied by this action
    from_alt: Optional[int] = None
    to_alt: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        entry = {'iter': self.iter, 'acid': self.acid, 'action': self.action}
        if self.action == ACTION_DELAY:
            entry['delay_min'] = self.delay_min
        else:
            entry['from_alt'] = self.from_alt
            entry['to_alt'] = self.to_alt
        entry['against'] = self.against
        return entry


@dataclass(frozen=True)
class RejectedRecord:
    index: int
    acid: Optional[str]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {'index': self.index, 'acid': self.acid, 'reason': self.reason}


@dataclass(frozen=True)
class FleetSnapshot:
    """Flight set as of one resolution iteration. Never mutated in place."""
    iteration: int
    flights: Tuple[Flight, ...]
    _index: Dict[str, Flight] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, '_index', {f.acid: f for f in self.flights})

    def __iter__(self) -> Iterator[Flight]:
        return iter(self.flights)

    def __len__(self) -> int:
        return len(self.flights)

    def get(self, acid: str) -> Flight:
        return self._index[acid]

    def with_flight(self, flight: Flight, iteration: int) -> FleetSnapshot:
        flights = tuple(flight if f.acid == flight.acid else f for f in self.flights)
        return FleetSnapshot(iteration=iteration, flights=flights)
