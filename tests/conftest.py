"""
Pytest configuration and fixtures for replay engine tests.

Provides sample builders, ready-made tracks, an in-memory recording canvas
and a virtual-time scheduler.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from overlays import RecordingCanvas
from playback import ManualScheduler
from track_model import GpsSample, Track, VehicleStatus

BASE_TIME = datetime(2025, 3, 14, 8, 0, 0, tzinfo=timezone.utc)

# Lahore, well away from null island and the poles
BASE_LAT = 31.5204
BASE_LNG = 74.3587


def make_sample(
    lat: Optional[float] = BASE_LAT,
    lng: Optional[float] = BASE_LNG,
    minutes: Optional[float] = 0.0,
    status: VehicleStatus = VehicleStatus.MOVING,
    heading: float = 0.0,
    speed: float = 40.0,
) -> GpsSample:
    """Build a GpsSample `minutes` after BASE_TIME (None for no timestamp)."""
    ts = BASE_TIME + timedelta(minutes=minutes) if minutes is not None else None
    return GpsSample(latitude=lat, longitude=lng, timestamp_utc=ts,
                     status=status, heading=heading, speed=speed)


def make_track(offsets_minutes: List[float], step_deg: float = 0.01) -> Track:
    """Track heading north, one `step_deg` per sample, at the given times."""
    return Track(samples=[
        make_sample(lat=BASE_LAT + i * step_deg, minutes=m, heading=float(i * 10))
        for i, m in enumerate(offsets_minutes)
    ])


def raw_record(i: int, minutes: float, step_deg: float = 0.01) -> dict:
    """Raw sample dict the way the data layer sends it."""
    return {
        "latitude": BASE_LAT + i * step_deg,
        "longitude": BASE_LNG,
        "gps_time": (BASE_TIME + timedelta(minutes=minutes)).strftime("%Y/%m/%d %H:%M:%S"),
        "status": "Moving",
        "speed": 40,
        "head": i * 10,
    }


@pytest.fixture
def five_point_track() -> Track:
    """Five samples one minute apart, 0.01 degrees apart."""
    return make_track([0, 1, 2, 3, 4])


@pytest.fixture
def gap_track() -> Track:
    """Five samples with a 40-minute gap between index 2 and 3."""
    return make_track([0, 1, 2, 42, 43])


@pytest.fixture
def single_point_track() -> Track:
    return Track(samples=[make_sample()])


@pytest.fixture
def empty_track() -> Track:
    return Track()


@pytest.fixture
def recording_canvas() -> RecordingCanvas:
    """In-memory canvas that records every drawable."""
    return RecordingCanvas(size=(800, 600))


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Virtual-time scheduler starting at t=0."""
    return ManualScheduler()


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for deterministic placement."""
    return random.Random(1234)


@pytest.fixture
def circle_geofence() -> dict:
    return {
        "id": "gf-1",
        "name": "Depot",
        "ShapeType": "circle",
        "latitude": BASE_LAT,
        "longitude": BASE_LNG,
        "radius": 500,
        "ColorGeoFence": "#257700",
        "chkShowOnMap": "true",
    }


@pytest.fixture
def polygon_geofence() -> dict:
    return {
        "id": "gf-2",
        "name": "Yard",
        "ShapeType": "polygon",
        "Polygonlatlng": "31.50 74.30, 31.51 74.30, 31.51 74.31, 31.50 74.31",
        "chkShowOnMap": "true",
    }
