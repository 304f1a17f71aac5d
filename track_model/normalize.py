"""
Boundary normalization for replay data.

The data-fetch layer hands over loosely-typed dicts whose field names vary
between endpoints ("gps_time" vs "timestamp", "Start Time" vs "startTime").
Everything is funneled through here into the pydantic models so the rest
of the engine only sees one shape.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from constants import EPOCH_MS_THRESHOLD
from track_model.data_models import GpsSample, Track, TripDescriptor, VehicleStatus, as_utc

logger = logging.getLogger(__name__)


LATITUDE_KEYS = ("latitude", "lat", "Latitude")
LONGITUDE_KEYS = ("longitude", "lng", "lon", "Longitude")
TIMESTAMP_KEYS = ("timestampUtc", "timestamp_utc", "timestamp", "gps_time", "gpsTime", "time")
HEADING_KEYS = ("heading", "head", "course")
SPEED_KEYS = ("speed", "Speed")
STATUS_KEYS = ("status", "Status")
LABEL_KEYS = ("vehicleLabel", "vehicle_label", "car_name", "carName", "vehicle", "label")
ODOMETER_KEYS = ("odo", "odometer")
LOCATION_KEYS = ("locationName", "Location", "location")

TRIP_START_KEYS = ("startTime", "start_time", "StartTime", "Start Time", "start", "tripStart")
TRIP_END_KEYS = ("endTime", "end_time", "EndTime", "End Time", "Arrival Time", "Stop Time",
                 "end", "tripEnd")
TRIP_DISTANCE_KEYS = ("distanceKm", "distance_km", "Distance", "distance")

_DATETIME_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y-%m-%d %H:%M",
    "%d/%m/%Y %H:%M:%S",
)


def first_present(record: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Return the value of the first alias present (and not None/empty) in record."""
    for key in keys:
        if key in record:
            value = record[key]
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            return value
    return None


def parse_float(value: Any) -> Optional[float]:
    """Parse a number that may arrive as a string; None if unparseable or non-finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp in any of the encodings the backend emits.

    Accepts datetime objects, ISO-8601 strings (optionally ending in 'Z'),
    "YYYY/MM/DD HH:MM:SS" style strings and epoch numbers (seconds, or
    milliseconds when larger than 1e11). Naive values are taken as UTC.

    Returns:
        Timezone-aware datetime, or None if parsing fails
    """
    if value is None or isinstance(value, bool):
        return None

    dt: Optional[datetime] = None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = _from_epoch(float(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        number = parse_float(text)
        if number is not None:
            dt = _from_epoch(number)
        else:
            dt = _parse_datetime_text(text)

    return as_utc(dt)


def _from_epoch(number: float) -> Optional[datetime]:
    if not math.isfinite(number) or number < 0:
        return None
    if number > EPOCH_MS_THRESHOLD:
        number /= 1000.0
    try:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_datetime_text(text: str) -> Optional[datetime]:
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        pass
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def normalize_sample(record: Any) -> GpsSample:
    """
    Build a GpsSample from a raw record.

    Never raises for bad field values: unparseable coordinates become None
    (the sample is kept but not drawn), unparseable speed/heading become 0.
    """
    if isinstance(record, GpsSample):
        return record
    if not isinstance(record, Mapping):
        logger.debug("Sample record is not a mapping: %r", record)
        return GpsSample()

    label = first_present(record, LABEL_KEYS)
    location = first_present(record, LOCATION_KEYS)
    return GpsSample(
        latitude=parse_float(first_present(record, LATITUDE_KEYS)),
        longitude=parse_float(first_present(record, LONGITUDE_KEYS)),
        timestamp_utc=parse_timestamp(first_present(record, TIMESTAMP_KEYS)),
        speed=parse_float(first_present(record, SPEED_KEYS)) or 0.0,
        heading=parse_float(first_present(record, HEADING_KEYS)) or 0.0,
        status=VehicleStatus.parse(first_present(record, STATUS_KEYS)),
        vehicle_label=str(label) if label is not None else "",
        odometer=parse_float(first_present(record, ODOMETER_KEYS)),
        location_name=str(location) if location is not None else None,
    )


def normalize_track(records: Optional[Iterable[Any]]) -> Track:
    """Build a Track from raw sample records, preserving order and count."""
    if records is None:
        return Track()
    if isinstance(records, Track):
        return records
    samples = [normalize_sample(r) for r in records]
    invalid = sum(1 for s in samples if not s.has_valid_position)
    if invalid:
        logger.debug("Track has %d of %d samples without a drawable position",
                     invalid, len(samples))
    return Track(samples=samples)


def normalize_trip(record: Any) -> Optional[TripDescriptor]:
    """
    Build a TripDescriptor from a raw trip record.

    Returns:
        TripDescriptor, or None if no start/end alias parses or end < start
    """
    if isinstance(record, TripDescriptor):
        return record
    if not isinstance(record, Mapping):
        logger.debug("Skipping trip record that is not a mapping: %r", record)
        return None

    start = parse_timestamp(first_present(record, TRIP_START_KEYS))
    end = parse_timestamp(first_present(record, TRIP_END_KEYS))
    if start is None or end is None:
        logger.debug("Skipping trip without parseable start/end: %r", record)
        return None
    if end < start:
        logger.debug("Skipping trip ending before it starts: %s > %s", start, end)
        return None

    return TripDescriptor(
        start_time=start,
        end_time=end,
        reported_distance_km=parse_float(first_present(record, TRIP_DISTANCE_KEYS)),
    )


def normalize_trips(records: Iterable[Any]) -> List[TripDescriptor]:
    """Normalize a trip list, dropping descriptors that cannot be parsed."""
    trips = []
    for record in records:
        trip = normalize_trip(record)
        if trip is not None:
            trips.append(trip)
    return trips
