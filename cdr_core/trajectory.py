"""
Trajectory model.

Turns a validated Flight into a time-parameterised path: departure station,
route waypoints, arrival station, flown at constant ground speed and constant
cruise altitude. Between breakpoints the position is linear in time.
"""

from __future__ import annotations

import math
import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .config import EngineConfig
from .models import Flight


EARTH_RADIUS_NM = 3440.065
NM_PER_DEGREE_LAT = 60.0

# "49.97N/110.935W"
_COORD_TOKEN = re.compile(r'^(\d{1,2}(?:\.\d+)?)([NS])/(\d{1,3}(?:\.\d+)?)([EW])$', re.IGNORECASE)


def haversine_nm(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in nautical miles."""
    lat1_rad, lon1_rad = math.radians(lat1), math.radians(lon1)
    lat2_rad, lon2_rad = math.radians(lat2), math.radians(lon2)
    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_NM * math.asin(min(1.0, math.sqrt(a)))


def great_circle_point(lat1: float, lon1: float, lat2: float, lon2: float, fraction: float) -> Tuple[float, float]:
    """Point at `fraction` of the way along the great circle from 1 to 2."""
    phi1, lam1 = math.radians(lat1), math.radians(lon1)
    phi2, lam2 = math.radians(lat2), math.radians(lon2)
    delta = haversine_nm(lat1, lon1, lat2, lon2) / EARTH_RADIUS_NM
    if delta == 0:
        return lat1, lon1
    a = math.sin((1 - fraction) * delta) / math.sin(delta)
    b = math.sin(fraction * delta) / math.sin(delta)
    x = a * math.cos(phi1) * math.cos(lam1) + b * math.cos(phi2) * math.cos(lam2)
    y = a * math.cos(phi1) * math.sin(lam1) + b * math.cos(phi2) * math.sin(lam2)
    z = a * math.sin(phi1) + b * math.sin(phi2)
    return math.degrees(math.atan2(z, math.hypot(x, y))), math.degrees(math.atan2(y, x))


def project_nm(lat: float, lon: float, ref_lat: float) -> Tuple[float, float]:
    """Local equirectangular projection, good enough over a few hundred NM."""
    return lon * NM_PER_DEGREE_LAT * math.cos(math.radians(ref_lat)), lat * NM_PER_DEGREE_LAT


def parse_coordinate_token(token: str) -> Optional[Tuple[float, float]]:
    match = _COORD_TOKEN.match(token.strip())
    if not match:
        return None
    lat = float(match.group(1)) * (-1 if match.group(2).upper() == 'S' else 1)
    lon = float(match.group(3)) * (-1 if match.group(4).upper() == 'W' else 1)
    if lat > 90 or lon > 180:
        return None
    return lat, lon


def resolve_waypoint(token: str, config: EngineConfig) -> Tuple[float, float]:
    """Coordinates of a route token: coordinate literal, named fix, or station code.

    Raises KeyError for unknown tokens.
    """
    coords = parse_coordinate_token(token)
    if coords is not None:
        return coords
    key = token.strip().upper()
    if key in config.fixes:
        return tuple(config.fixes[key])
    if key in config.stations:
        return tuple(config.stations[key])
    raise KeyError(token)


def is_station(token: str, config: EngineConfig) -> bool:
    return parse_coordinate_token(token) is None and token.strip().upper() in config.stations


@dataclass(frozen=True)
class Trajectory:
    acid: str
    altitude: float
    times: Tuple[float, ...]  # epoch seconds, strictly increasing
    lats: Tuple[float, ...]
    lons: Tuple[float, ...]

    @property
    def start(self) -> float:
        return self.times[0]

    @property
    def end(self) -> float:
        return self.times[-1]

    def position_at(self, t: float) -> Optional[Tuple[float, float, float]]:
        """(lat, lon, altitude) at epoch time t, or None when not airborne."""
        if t < self.start or t > self.end:
            return None
        i = bisect_right(self.times, t) - 1
        if i >= len(self.times) - 1:
            return self.lats[-1], self.lons[-1], self.altitude
        t0, t1 = self.times[i], self.times[i + 1]
        f = (t - t0) / (t1 - t0)
        return (
            self.lats[i] + f * (self.lats[i + 1] - self.lats[i]),
            self.lons[i] + f * (self.lons[i + 1] - self.lons[i]),
            self.altitude,
        )

    def segments(self):
        """Yield (t0, t1, lat0, lon0, lat1, lon1) per linear piece."""
        for i in range(len(self.times) - 1):
            yield (self.times[i], self.times[i + 1],
                   self.lats[i], self.lons[i], self.lats[i + 1], self.lons[i + 1])


def route_points(flight: Flight, config: EngineConfig) -> List[Tuple[float, float]]:
    points = [tuple(config.stations[flight.departure])]
    points.extend(resolve_waypoint(token, config) for token in flight.route)
    points.append(tuple(config.stations[flight.arrival]))
    return points


def build_trajectory(flight: Flight, config: EngineConfig) -> Trajectory:
    points = route_points(flight, config)

    path: List[Tuple[float, float]] = [points[0]]
    for (lat1, lon1), (lat2, lon2) in zip(points, points[1:]):
        leg_nm = haversine_nm(lat1, lon1, lat2, lon2)
        if leg_nm == 0:
            continue
        if config.route_geometry == 'great_circle':
            pieces = max(1, math.ceil(leg_nm / config.great_circle_step_nm))
            for k in range(1, pieces):
                path.append(great_circle_point(lat1, lon1, lat2, lon2, k / pieces))
        path.append((lat2, lon2))

    speed_nm_per_s = flight.speed / 3600.0
    t = flight.effective_departure.timestamp()
    times = [t]
    for (lat1, lon1), (lat2, lon2) in zip(path, path[1:]):
        t += haversine_nm(lat1, lon1, lat2, lon2) / speed_nm_per_s
        times.append(t)

    return Trajectory(
        acid=flight.acid,
        altitude=float(flight.altitude),
        times=tuple(times),
        lats=tuple(p[0] for p in path),
        lons=tuple(p[1] for p in path),
    )


class TrajectoryCache:
    """Trajectories keyed by flight state; a new delay or altitude is a new key."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self._cache: Dict[Flight, Trajectory] = {}

    def get(self, flight: Flight) -> Trajectory:
        trajectory = self._cache.get(flight)
        if trajectory is None:
            trajectory = build_trajectory(flight, self.config)
            self._cache[flight] = trajectory
        return trajectory

    def __len__(self):
        return len(self._cache)
