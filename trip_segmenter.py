"""
Trip segmentation for replay tracks.

Two modes:
- Explicit: an external trip list supplies start/end times; each trip is the
  set of samples inside its (inclusive) time window.
- Inferred: the track is split wherever consecutive samples are more than
  `gap` apart; single-sample runs are dropped.

Both modes then compute each trip's flat-earth distance and drop trips below
the noise threshold.
"""

import logging
from datetime import timedelta
from typing import Any, Iterable, List, Optional, Sequence

from constants import (
    MIN_TRIP_DISTANCE_KM,
    MIN_TRIP_POINTS,
    TRIP_COLORS,
    TRIP_GAP_MINUTES,
)
from track_model import (
    Track,
    Trip,
    TripDescriptor,
    TripSource,
    approx_distance_km,
    normalize_trips,
)

logger = logging.getLogger(__name__)


def split_runs(track: Track, gap: timedelta = timedelta(minutes=TRIP_GAP_MINUTES)) -> List[List[int]]:
    """
    Split the track into runs of sample indices separated by time gaps.

    The runs exactly partition the track: every index appears in exactly one
    run. A new run starts when the time between two consecutive timestamped
    samples exceeds `gap`; samples without a timestamp never start a run.

    Args:
        track: Track to split
        gap: Maximum allowed gap inside a run

    Returns:
        List of index runs, in track order
    """
    runs: List[List[int]] = []
    current: List[int] = []
    last_time = None

    for i, sample in enumerate(track):
        ts = sample.timestamp_utc
        if current and ts is not None and last_time is not None and ts - last_time > gap:
            runs.append(current)
            current = []
        current.append(i)
        if ts is not None:
            last_time = ts

    if current:
        runs.append(current)
    return runs


def _window_indices(track: Track, descriptor: TripDescriptor) -> List[int]:
    return [
        i for i, s in enumerate(track)
        if s.timestamp_utc is not None
        and descriptor.start_time <= s.timestamp_utc <= descriptor.end_time
    ]


def _finalize(track: Track, candidates: Iterable[Trip], min_distance_km: float) -> List[Trip]:
    """Compute distances, drop noise trips and number the survivors."""
    retained: List[Trip] = []
    for trip in candidates:
        distance = approx_distance_km(track.points_for(trip.point_indices))
        if distance < min_distance_km:
            logger.debug("Dropping %s trip with %d points: %.5f km below threshold",
                         trip.source.value, len(trip.point_indices), distance)
            continue
        index = len(retained)
        retained.append(trip.model_copy(update={
            "distance_km": distance,
            "color_index": index % len(TRIP_COLORS),
            "label": index + 1,
        }))
    return retained


def infer_trips(
    track: Track,
    gap_minutes: float = TRIP_GAP_MINUTES,
    min_distance_km: float = MIN_TRIP_DISTANCE_KM,
) -> List[Trip]:
    """
    Infer trips from time gaps in the track.

    Args:
        track: Track to segment
        gap_minutes: A gap strictly longer than this starts a new trip
        min_distance_km: Trips shorter than this are discarded as noise

    Returns:
        Retained trips in track order
    """
    candidates = []
    for run in split_runs(track, timedelta(minutes=gap_minutes)):
        if len(run) < MIN_TRIP_POINTS:
            continue
        candidates.append(Trip(
            start_time=track[run[0]].timestamp_utc,
            end_time=track[run[-1]].timestamp_utc,
            source=TripSource.INFERRED,
            point_indices=run,
        ))
    return _finalize(track, candidates, min_distance_km)


def explicit_trips(
    track: Track,
    descriptors: Sequence[TripDescriptor],
    min_distance_km: float = MIN_TRIP_DISTANCE_KM,
) -> List[Trip]:
    """
    Build trips from externally supplied start/end times.

    Args:
        track: Track to filter
        descriptors: Normalized trip descriptors
        min_distance_km: Trips shorter than this are discarded as noise

    Returns:
        Retained trips in descriptor order
    """
    candidates = []
    for descriptor in descriptors:
        candidates.append(Trip(
            start_time=descriptor.start_time,
            end_time=descriptor.end_time,
            source=TripSource.EXPLICIT,
            point_indices=_window_indices(track, descriptor),
            reported_distance_km=descriptor.reported_distance_km,
        ))
    return _finalize(track, candidates, min_distance_km)


def segment_trips(
    track: Track,
    trips: Optional[Iterable[Any]] = None,
    gap_minutes: float = TRIP_GAP_MINUTES,
    min_distance_km: float = MIN_TRIP_DISTANCE_KM,
) -> List[Trip]:
    """
    Segment a track into trips.

    Explicit mode is used whenever a trip list is supplied (even an empty
    one); inference runs only when the list is absent.

    Args:
        track: Track to segment
        trips: Raw trip records (any accepted alias shape), or None
        gap_minutes: Gap threshold for inference
        min_distance_km: Noise threshold for both modes

    Returns:
        Retained trips, numbered from 1
    """
    if len(track) < MIN_TRIP_POINTS:
        return []
    if trips is None:
        result = infer_trips(track, gap_minutes, min_distance_km)
    else:
        result = explicit_trips(track, normalize_trips(trips), min_distance_km)
    logger.debug("Segmented %d samples into %d trips (%s)", len(track), len(result),
                 "inferred" if trips is None else "explicit")
    return result
