# cdr_core/config.py

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Tuple

import pandas as pd

from .exceptions import ConfigurationError

# ICAO code: (latitude, longitude) in decimal degrees
CANADIAN_STATIONS: Dict[str, Tuple[float, float]] = {
    'CYYZ': (43.6777, -79.6248),   # Toronto Pearson
    'CYTZ': (43.6275, -79.3962),   # Toronto Billy Bishop
    'CYHM': (43.1736, -79.9350),   # Hamilton
    'CYKF': (43.4608, -80.3786),   # Waterloo
    'CYXU': (43.0356, -81.1539),   # London
    'CYQG': (42.2756, -82.9556),   # Windsor
    'CYOW': (45.3225, -75.6692),   # Ottawa
    'CYUL': (45.4706, -73.7408),   # Montreal Trudeau
    'CYQB': (46.7911, -71.3933),   # Quebec City
    'CYQM': (46.1122, -64.6786),   # Moncton
    'CYFC': (45.8689, -66.5372),   # Fredericton
    'CYSJ': (45.3161, -65.8903),   # Saint John
    'CYHZ': (44.8808, -63.5086),   # Halifax
    'CYYT': (47.6186, -52.7519),   # St. John's
    'CYQX': (48.9369, -54.5681),   # Gander
    'CYQT': (48.3719, -89.3239),   # Thunder Bay
    'CYWG': (49.9100, -97.2399),   # Winnipeg
    'CYQR': (50.4319, -104.6658),  # Regina
    'CYXE': (52.1708, -106.6997),  # Saskatoon
    'CYYC': (51.1139, -114.0203),  # Calgary
    'CYEG': (53.3097, -113.5797),  # Edmonton
    'CYMM': (56.6533, -111.2219),  # Fort McMurray
    'CYXS': (53.8894, -122.6789),  # Prince George
    'CYKA': (50.7022, -120.4444),  # Kamloops
    'CYLW': (49.9561, -119.3778),  # Kelowna
    'CYVR': (49.1947, -123.1792),  # Vancouver
    'CYXX': (49.0253, -122.3608),  # Abbotsford
    'CYYJ': (48.6469, -123.4258),  # Victoria
    'CYZF': (62.4628, -114.4403),  # Yellowknife
    'CYXY': (60.7096, -135.0674),  # Whitehorse
}

ROUTE_GEOMETRIES = ('great_circle', 'straight')

NUMERIC_FIELDS = (
    'min_horizontal_separation_nm', 'min_vertical_separation_ft',
    'critical_threshold_nm', 'moderate_threshold_nm',
    'max_iterations', 'delay_step_min', 'max_delay_min',
    'altitude_step_ft', 'max_altitude_steps', 'min_altitude_ft', 'max_altitude_ft',
    'hotspot_radius_nm', 'density_weight', 'conflict_weight',
    'great_circle_step_nm', 'detection_workers', 'top_aircraft_limit',
)


@dataclass
class EngineConfig:
    """Engine-level thresholds and caps.

    Every field has a documented default and can be overridden through
    ``EngineConfig.from_dict``. ``validate`` is called before any run starts.
    """
    # Separation minima
    min_horizontal_separation_nm: float = 5.0
    min_vertical_separation_ft: float = 1000.0

    # Severity bands: <critical, [critical, moderate), [moderate, horizontal minimum)
    critical_threshold_nm: float = 1.0
    moderate_threshold_nm: float = 3.0

    # Resolution
    max_iterations: int = 50
    delay_step_min: float = 5.0
    max_delay_min: float = 60.0
    altitude_step_ft: int = 1000
    max_altitude_steps: int = 4
    min_altitude_ft: int = 1000
    max_altitude_ft: int = 45000

    # Hotspots
    hotspot_radius_nm: float = 10.0
    density_weight: float = 0.6
    conflict_weight: float = 0.4
    window_start: Optional[Any] = None
    window_end: Optional[Any] = None

    # Trajectories
    route_geometry: str = 'great_circle'
    great_circle_step_nm: float = 50.0

    detection_workers: int = 1
    top_aircraft_limit: int = 10

    stations: Dict[str, Tuple[float, float]] = field(default_factory=lambda: dict(CANADIAN_STATIONS))
    fixes: Dict[str, Tuple[float, float]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, overrides: Optional[Mapping[str, Any]] = None) -> 'EngineConfig':
        overrides = dict(overrides or {})
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        config = cls(**overrides)
        config.validate()
        return config

    @property
    def window_bounds(self) -> Tuple[Optional[float], Optional[float]]:
        """Analysis window as epoch seconds (None where open)."""
        return _to_epoch(self.window_start), _to_epoch(self.window_end)

    def validate(self) -> None:
        for name in NUMERIC_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ConfigurationError(f"{name} must be a number (got {value!r})")
            if not math.isfinite(value):
                raise ConfigurationError(f"{name} must be finite (got {value!r})")

        if self.min_horizontal_separation_nm <= 0:
            raise ConfigurationError("min_horizontal_separation_nm must be positive")
        if self.min_vertical_separation_ft <= 0:
            raise ConfigurationError("min_vertical_separation_ft must be positive")
        if not 0 < self.critical_threshold_nm < self.moderate_threshold_nm < self.min_horizontal_separation_nm:
            raise ConfigurationError(
                "Severity thresholds must satisfy 0 < critical < moderate < min_horizontal_separation_nm "
                f"(got {self.critical_threshold_nm}, {self.moderate_threshold_nm}, "
                f"{self.min_horizontal_separation_nm})"
            )
        if not isinstance(self.max_iterations, int) or self.max_iterations < 0:
            raise ConfigurationError("max_iterations must be a non-negative integer")
        if self.delay_step_min <= 0 or self.max_delay_min < 0:
            raise ConfigurationError("delay_step_min must be positive and max_delay_min non-negative")
        if self.altitude_step_ft <= 0 or self.max_altitude_steps < 0:
            raise ConfigurationError("altitude_step_ft must be positive and max_altitude_steps non-negative")
        if not 0 < self.min_altitude_ft < self.max_altitude_ft:
            raise ConfigurationError("Altitude bounds must satisfy 0 < min_altitude_ft < max_altitude_ft")
        if self.hotspot_radius_nm <= 0:
            raise ConfigurationError("hotspot_radius_nm must be positive")
        if self.density_weight < 0 or self.conflict_weight < 0:
            raise ConfigurationError("Pressure weights must be non-negative")
        if not math.isclose(self.density_weight + self.conflict_weight, 1.0, abs_tol=1e-9):
            raise ConfigurationError("density_weight + conflict_weight must equal 1")
        if self.route_geometry not in ROUTE_GEOMETRIES:
            raise ConfigurationError(f"route_geometry must be one of {ROUTE_GEOMETRIES}")
        if self.great_circle_step_nm <= 0:
            raise ConfigurationError("great_circle_step_nm must be positive")
        if not isinstance(self.detection_workers, int) or self.detection_workers < 1:
            raise ConfigurationError("detection_workers must be an integer >= 1")
        if self.top_aircraft_limit < 1:
            raise ConfigurationError("top_aircraft_limit must be >= 1")

        try:
            start, end = self.window_bounds
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid analysis window: {e}") from e
        if any(bound is not None and not math.isfinite(bound) for bound in (start, end)):
            raise ConfigurationError("Analysis window bounds must be finite")
        if start is not None and end is not None and start >= end:
            raise ConfigurationError("window_start must be before window_end")

        for table_name in ('stations', 'fixes'):
            for code, coords in getattr(self, table_name).items():
                try:
                    lat, lon = coords
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(f"{table_name}[{code!r}] must be a (lat, lon) pair") from e
                if not all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in (lat, lon)):
                    raise ConfigurationError(f"{table_name}[{code!r}] coordinates must be numbers")
                if not (-90 <= lat <= 90 and -180 <= lon <= 180):
                    raise ConfigurationError(f"{table_name}[{code!r}] has out-of-range coordinates")


def resolve_config(config: Any = None) -> EngineConfig:
    """Accept None, an EngineConfig or a mapping of overrides."""
    if config is None:
        config = EngineConfig()
    elif isinstance(config, Mapping):
        return EngineConfig.from_dict(config)
    elif not isinstance(config, EngineConfig):
        raise ConfigurationError(f"Unsupported configuration type: {type(config).__name__}")
    config.validate()
    return config


def _to_epoch(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    return ts.timestamp()


def get_flight_table_schema():
    columns_with_types = {
        'acid': str, 'plane_type': str, 'departure': str, 'arrival': str, 'altitude': int, 'speed': float,
        'passengers': int, 'is_cargo': bool, 'departure_time': str, 'delay_min': float,
    }
    return pd.DataFrame({col: pd.Series(dtype=dtype) for col, dtype in columns_with_types.items()})
