"""
Track and trip model for the replay engine.

Holds the immutable GPS samples of one playback session, the trips found in
them, and the boundary normalization of raw records from the data layer.
"""

from track_model.data_models import (
    GpsSample,
    Track,
    Trip,
    TripDescriptor,
    TripSource,
    VehicleStatus,
    approx_distance_km,
    as_utc,
    is_valid_coordinate,
)
from track_model.normalize import (
    normalize_sample,
    normalize_track,
    normalize_trip,
    normalize_trips,
    parse_timestamp,
)

__all__ = [
    "GpsSample",
    "Track",
    "Trip",
    "TripDescriptor",
    "TripSource",
    "VehicleStatus",
    "approx_distance_km",
    "as_utc",
    "is_valid_coordinate",
    "normalize_sample",
    "normalize_track",
    "normalize_trip",
    "normalize_trips",
    "parse_timestamp",
]
