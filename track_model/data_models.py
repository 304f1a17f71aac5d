"""
Data models for replay tracks and trips.

Pydantic models representing GPS samples loaded for one playback session
and the trips (sub-journeys) found within them.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from constants import KM_PER_DEGREE, NULL_ISLAND_EPSILON

LatLng = Tuple[float, float]


class VehicleStatus(str, Enum):
    """Vehicle state reported with each GPS sample."""
    MOVING = "Moving"
    IDLE = "Idle"
    STOP = "Stop"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value) -> "VehicleStatus":
        """Map a raw status value to a VehicleStatus (case-insensitive).

        Unrecognized or missing values become UNKNOWN.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.UNKNOWN
        key = str(value).strip().lower()
        return _STATUS_ALIASES.get(key, cls.UNKNOWN)


_STATUS_ALIASES = {
    "moving": VehicleStatus.MOVING,
    "running": VehicleStatus.MOVING,
    "idle": VehicleStatus.IDLE,
    "idling": VehicleStatus.IDLE,
    "stop": VehicleStatus.STOP,
    "stopped": VehicleStatus.STOP,
    "parked": VehicleStatus.STOP,
    "unknown": VehicleStatus.UNKNOWN,
}


def is_valid_coordinate(lat: Optional[float], lng: Optional[float]) -> bool:
    """Check that a lat/lng pair can be placed on a map.

    Rejects missing, non-finite and out-of-range values, and the
    (0, 0) "null island" placeholder some trackers emit before a fix.
    """
    if lat is None or lng is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    if abs(lat) > 90.0 or abs(lng) > 180.0:
        return False
    if abs(lat) < NULL_ISLAND_EPSILON and abs(lng) < NULL_ISLAND_EPSILON:
        return False
    return True


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert to UTC; naive values are taken to already be UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def approx_distance_km(points: Sequence[LatLng]) -> float:
    """
    Sum of pairwise flat-earth distances between consecutive points.

    Uses sqrt(dlat^2 + dlng^2) * 111, which ignores longitude convergence
    toward the poles. Trip filtering thresholds are expressed in these units.
    """
    total = 0.0
    for (lat1, lng1), (lat2, lng2) in zip(points, points[1:]):
        total += math.sqrt((lat2 - lat1) ** 2 + (lng2 - lng1) ** 2) * KM_PER_DEGREE
    return total


class GpsSample(BaseModel):
    """
    Single GPS sample from the vehicle's history.

    Immutable once loaded. Coordinates may be missing or invalid; such
    samples stay in the track (so indices match external tables) but are
    never drawn.
    """
    model_config = ConfigDict(frozen=True)

    latitude: Optional[float] = Field(default=None, description="WGS84 latitude in degrees")
    longitude: Optional[float] = Field(default=None, description="WGS84 longitude in degrees")
    timestamp_utc: Optional[datetime] = Field(default=None, description="Fix time (UTC)")
    speed: float = Field(default=0.0, description="Speed in km/h")
    heading: float = Field(default=0.0, description="Heading in degrees (0=North, 90=East)")
    status: VehicleStatus = Field(default=VehicleStatus.UNKNOWN)
    vehicle_label: str = Field(default="", description="Vehicle name or plate")
    odometer: Optional[float] = Field(default=None, description="Odometer reading, if reported")
    location_name: Optional[str] = Field(default=None, description="Reverse-geocoded address")

    @field_validator("timestamp_utc")
    @classmethod
    def timestamp_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def has_valid_position(self) -> bool:
        """True if this sample can be placed on the map."""
        return is_valid_coordinate(self.latitude, self.longitude)

    @property
    def position(self) -> Optional[LatLng]:
        """(lat, lng) tuple, or None for invalid samples."""
        if not self.has_valid_position:
            return None
        return (self.latitude, self.longitude)


class Track(BaseModel):
    """
    Full ordered sequence of GPS samples for one playback session.

    Supports len(), indexing and iteration over samples.
    """
    model_config = ConfigDict(frozen=True)

    samples: List[GpsSample] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, index: int) -> GpsSample:
        return self.samples[index]

    def __iter__(self) -> Iterator[GpsSample]:  # type: ignore[override]
        return iter(self.samples)

    @property
    def is_empty(self) -> bool:
        return not self.samples

    @property
    def valid_indices(self) -> List[int]:
        """Indices of samples with a drawable position."""
        return [i for i, s in enumerate(self.samples) if s.has_valid_position]

    @property
    def valid_points(self) -> List[LatLng]:
        """(lat, lng) of every sample with a drawable position, in order."""
        return [s.position for s in self.samples if s.has_valid_position]

    def points_for(self, indices: Sequence[int]) -> List[LatLng]:
        """Valid (lat, lng) points for a subset of sample indices."""
        points = []
        for i in indices:
            pos = self.samples[i].position
            if pos is not None:
                points.append(pos)
        return points

    @property
    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        """(south, west, north, east) over valid samples, or None."""
        points = self.valid_points
        if not points:
            return None
        lats = [p[0] for p in points]
        lngs = [p[1] for p in points]
        return (min(lats), min(lngs), max(lats), max(lngs))

    @property
    def start_time(self) -> Optional[datetime]:
        """Timestamp of the first sample that has one."""
        for s in self.samples:
            if s.timestamp_utc is not None:
                return s.timestamp_utc
        return None

    @property
    def end_time(self) -> Optional[datetime]:
        """Timestamp of the last sample that has one."""
        for s in reversed(self.samples):
            if s.timestamp_utc is not None:
                return s.timestamp_utc
        return None

    @property
    def duration_seconds(self) -> float:
        """Time span covered by the track in seconds."""
        if self.start_time is None or self.end_time is None:
            return 0.0
        return max(0.0, (self.end_time - self.start_time).total_seconds())

    @property
    def approx_distance_km(self) -> float:
        """Flat-earth distance along all valid samples."""
        return approx_distance_km(self.valid_points)


class TripSource(str, Enum):
    """Where a trip boundary came from."""
    EXPLICIT = "explicit"
    INFERRED = "inferred"


class Trip(BaseModel):
    """
    A contiguous sub-journey within a track.

    point_indices lists the track samples belonging to the trip, in order.
    distance_km is always computed from those samples; the distance the
    trip list reported (if any) is kept separately.
    """
    model_config = ConfigDict(frozen=True)

    start_time: Optional[datetime] = Field(default=None)
    end_time: Optional[datetime] = Field(default=None)
    distance_km: float = Field(default=0.0, description="Flat-earth distance of the point subset")
    color_index: int = Field(default=0, ge=0)
    label: int = Field(default=1, ge=1, description="1-based trip number shown on markers")
    source: TripSource = Field(default=TripSource.INFERRED)
    point_indices: List[int] = Field(default_factory=list)
    reported_distance_km: Optional[float] = Field(default=None)

    @field_validator("start_time", "end_time")
    @classmethod
    def times_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def points(self, track: Track) -> List[LatLng]:
        """Valid (lat, lng) points of this trip's subset of the track."""
        return track.points_for(self.point_indices)

    @property
    def duration_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return max(0.0, (self.end_time - self.start_time).total_seconds())


class TripDescriptor(BaseModel):
    """Externally supplied trip boundaries after alias normalization."""
    model_config = ConfigDict(frozen=True)

    start_time: datetime
    end_time: datetime
    reported_distance_km: Optional[float] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def times_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)
