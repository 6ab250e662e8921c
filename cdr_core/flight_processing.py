# cdr_core/flight_processing.py

import logging
import math
import numbers
from typing import Any, Iterable, List, Mapping, Tuple

import pandas as pd

from .config import EngineConfig
from .exceptions import ValidationError
from .models import Flight, RejectedRecord
from .trajectory import haversine_nm, resolve_waypoint, route_points

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('acid', 'departure', 'arrival', 'altitude', 'speed', 'departure_time')

# Nav Canada export names -> engine names
FIELD_ALIASES = {
    'departure_airport': 'departure',
    'arrival_airport': 'arrival',
    'aircraft_speed': 'speed',
}

OPTIONAL_DEFAULTS = {'passengers': 0, 'is_cargo': False, 'plane_type': '', 'route': None}


def records_to_dataframe(records: Any) -> pd.DataFrame:
    """
    Build the raw schedule frame from a list of records (or {"flights": [...]}).
    Alias columns are folded into the engine names; missing optional columns get defaults.
    """
    if isinstance(records, Mapping):
        records = records.get('flights', [])
    records = list(records or [])
    if not records:
        return pd.DataFrame(columns=list(REQUIRED_FIELDS) + list(OPTIONAL_DEFAULTS))

    df = pd.DataFrame.from_records(records)
    for alias, name in FIELD_ALIASES.items():
        if alias not in df.columns:
            continue
        if name in df.columns:
            df[name] = df[name].where(df[name].notna(), df[alias])
        else:
            df[name] = df[alias]
        df.drop(columns=[alias], inplace=True)

    for col in REQUIRED_FIELDS:
        if col not in df.columns:
            df[col] = None
    for col, default in OPTIONAL_DEFAULTS.items():
        if col not in df.columns:
            df[col] = default
    return df


def process_flight_records(records: Any, config: EngineConfig) -> Tuple[List[Flight], List[RejectedRecord]]:
    """
    Validate every record independently. Bad records are rejected one by one,
    the rest of the batch goes through.
    """
    df = records_to_dataframe(records)

    flights: List[Flight] = []
    rejected: List[RejectedRecord] = []
    seen_acids = set()

    for index, row in df.iterrows():
        try:
            flight = parse_flight_row(row, config, index=index)
            if flight.acid in seen_acids:
                raise ValidationError(f"Duplicate acid {flight.acid}", index=index, acid=flight.acid)
            seen_acids.add(flight.acid)
            flights.append(flight)
        except ValidationError as e:
            logger.warning(f"Rejected flight record #{index} ({e.acid or 'unknown'}): {e}")
            rejected.append(RejectedRecord(index=int(index), acid=e.acid, reason=str(e)))

    logger.info(f"Ingested {len(flights)} valid flights, rejected {len(rejected)} records")
    return flights, rejected


def parse_flight_row(row: Mapping[str, Any], config: EngineConfig, index: int = 0) -> Flight:
    acid = _clean_str(row.get('acid'))
    if not acid:
        raise ValidationError("Missing required field 'acid'", index=index)

    def fail(message):
        return ValidationError(message, index=index, acid=acid)

    missing = [col for col in REQUIRED_FIELDS if _is_missing(row.get(col))]
    if missing:
        raise fail(f"Missing required field(s): {', '.join(missing)}")

    departure = _clean_str(row['departure']).upper()
    arrival = _clean_str(row['arrival']).upper()
    if departure == arrival:
        raise fail(f"Departure and arrival are both {departure}")
    for code in (departure, arrival):
        if code not in config.stations:
            raise fail(f"Unknown station {code}")

    altitude = _to_number(row['altitude'], 'altitude', fail)
    speed = _to_number(row['speed'], 'speed', fail)
    if altitude <= 0:
        raise fail(f"Altitude must be positive (got {altitude})")
    if speed <= 0:
        raise fail(f"Speed must be positive (got {speed})")

    passengers = 0 if _is_missing(row.get('passengers')) else _to_number(row['passengers'], 'passengers', fail)
    if passengers < 0 or passengers != int(passengers):
        raise fail(f"Passengers must be a non-negative integer (got {passengers})")

    flight = Flight(
        acid=acid,
        departure=departure,
        arrival=arrival,
        altitude=int(round(altitude)),
        speed=float(speed),
        scheduled_departure=parse_departure_time(row['departure_time'], fail),
        passengers=int(passengers),
        is_cargo=_to_bool(row.get('is_cargo')),
        plane_type='' if _is_missing(row.get('plane_type')) else _clean_str(row.get('plane_type')),
        route=parse_route(row.get('route'), config, fail),
    )

    points = route_points(flight, config)
    path_nm = sum(haversine_nm(p[0], p[1], q[0], q[1]) for p, q in zip(points, points[1:]))
    if path_nm <= 0:
        raise fail("Route has zero length")
    return flight


def parse_departure_time(value: Any, fail) -> pd.Timestamp:
    """Unix seconds or an ISO-8601 string, normalised to UTC."""
    try:
        if isinstance(value, numbers.Real) and not isinstance(value, bool):
            ts = pd.to_datetime(value, unit='s', utc=True)
        else:
            text = str(value).strip()
            ts = pd.to_datetime(float(text), unit='s', utc=True) if _is_numeric(text) else pd.to_datetime(text, utc=True)
    except (ValueError, TypeError, OverflowError) as e:
        raise fail(f"Unparsable departure_time {value!r}: {e}") from e
    if pd.isna(ts):
        raise fail(f"Unparsable departure_time {value!r}")
    return ts


def parse_route(value: Any, config: EngineConfig, fail) -> Tuple[str, ...]:
    if value is None or (not isinstance(value, (list, tuple)) and _is_missing(value)):
        return ()
    tokens: Iterable[Any] = value.split() if isinstance(value, str) else value
    route = []
    for token in tokens:
        token = _clean_str(token)
        if not token:
            continue
        try:
            resolve_waypoint(token, config)
        except KeyError:
            raise fail(f"Unknown route waypoint {token}") from None
        route.append(token.upper())
    return tuple(route)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _is_numeric(text: str) -> bool:
    try:
        float(text)
        return True
    except ValueError:
        return False


def _clean_str(value: Any) -> str:
    if _is_missing(value):
        return ''
    return str(value).strip()


def _to_number(value: Any, name: str, fail) -> float:
    number = pd.to_numeric(value, errors='coerce')
    if pd.isna(number):
        raise fail(f"Field '{name}' is not numeric (got {value!r})")
    if not math.isfinite(number):
        raise fail(f"Field '{name}' must be finite (got {value!r})")
    return float(number)


def _to_bool(value: Any) -> bool:
    if _is_missing(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes', 'y')
    return bool(value)
