"""
Position interpolation for replay playback.

Maps the scrubber progress (0-100) onto a continuous position between two
discrete, irregularly-spaced GPS samples.
"""

import math
from dataclasses import dataclass, replace
from typing import Optional

from constants import PROGRESS_MIN, PROGRESS_MAX
from track_model import GpsSample, Track, VehicleStatus


@dataclass(frozen=True)
class InterpolatedPosition:
    """Live vehicle position for one playback tick.

    Attributes:
        latitude, longitude: Interpolated coordinates, or None if neither
            bracketing sample has a valid position
        heading: Linearly interpolated heading in degrees
        speed: Linearly interpolated speed
        status: Status of sample `index`, or of `next_index` past the midpoint
        index: floor of the fractional sample index
        next_index: Sample the position is moving toward
        fraction: Position between index and next_index (0-1)
    """
    latitude: Optional[float]
    longitude: Optional[float]
    heading: float
    speed: float
    status: VehicleStatus
    index: int
    next_index: int
    fraction: float

    @property
    def display_index(self) -> int:
        """Sample index to highlight in external tables.

        Follows the same midpoint rule as status so the highlighted row and
        the marker always agree.
        """
        return self.next_index if self.fraction > 0.5 else self.index

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def clamp_progress(progress: float) -> float:
    """Clamp progress into [0, 100]; NaN maps to 0."""
    if progress is None or math.isnan(progress):
        return PROGRESS_MIN
    return max(PROGRESS_MIN, min(PROGRESS_MAX, float(progress)))


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _from_sample(sample: GpsSample, index: int) -> InterpolatedPosition:
    pos = sample.position
    return InterpolatedPosition(
        latitude=pos[0] if pos else None,
        longitude=pos[1] if pos else None,
        heading=sample.heading,
        speed=sample.speed,
        status=sample.status,
        index=index,
        next_index=index,
        fraction=0.0,
    )


def interpolate(track: Track, progress: float) -> Optional[InterpolatedPosition]:
    """
    Interpolate the vehicle position for a given playback progress.

    floatIdx = (p / 100) * (N - 1); the position is the linear blend of
    samples floor(floatIdx) and min(ceil(floatIdx), N - 1). Status switches
    to the next sample only past the segment midpoint, so it does not
    flicker at the exact boundary.

    Args:
        track: Track being replayed
        progress: Playback progress in [0, 100] (clamped)

    Returns:
        InterpolatedPosition, or None for an empty track
    """
    n = len(track)
    if n == 0:
        return None
    if n == 1:
        return _from_sample(track[0], 0)

    float_idx = (clamp_progress(progress) / 100.0) * (n - 1)
    idx = int(math.floor(float_idx))
    next_idx = min(int(math.ceil(float_idx)), n - 1)
    idx = min(idx, n - 1)
    t = float_idx - idx

    a = track[idx]
    b = track[next_idx]
    if t == 0.0 or idx == next_idx:
        return replace(_from_sample(a, idx), next_index=next_idx)

    pa, pb = a.position, b.position
    if pa is not None and pb is not None:
        lat = _lerp(pa[0], pb[0], t)
        lng = _lerp(pa[1], pb[1], t)
    elif pa is not None:
        lat, lng = pa
    elif pb is not None:
        lat, lng = pb
    else:
        lat = lng = None

    return InterpolatedPosition(
        latitude=lat,
        longitude=lng,
        heading=_lerp(a.heading, b.heading, t),
        speed=_lerp(a.speed, b.speed, t),
        status=b.status if t > 0.5 else a.status,
        index=idx,
        next_index=next_idx,
        fraction=t,
    )


def progress_for_index(track_length: int, index: int) -> Optional[float]:
    """Progress value that lands exactly on sample `index`.

    Returns None for tracks shorter than two samples, where seeking by
    index has no meaning.
    """
    if track_length < 2:
        return None
    index = max(0, min(track_length - 1, index))
    return index / (track_length - 1) * 100.0
