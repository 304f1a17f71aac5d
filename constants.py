"""
Constants for the replay track animation engine.

Centralized definitions for playback timing, trip segmentation thresholds,
overlay z-ordering, marker sizing and colors.
"""

from typing import Tuple
from dataclasses import dataclass


# =============================================================================
# Colors (hex strings, as accepted by map canvases)
# =============================================================================

@dataclass(frozen=True)
class Colors:
    """Common overlay colors."""
    TRACK_LINE: str = "#25689f"        # Base track polyline
    START_FLAG: str = "#10b981"        # "S" flag at first sample
    END_FLAG: str = "#ef4444"          # "E" flag at last sample
    LIVE_VEHICLE: str = "#f59e0b"      # Animated vehicle marker
    MARKER_OUTLINE: str = "#ffffff"

    # Sample status (matches the detail table row colors)
    STATUS_MOVING: str = "#00C951"
    STATUS_IDLE: str = "#F0B100"
    STATUS_STOP: str = "#FB2C36"
    STATUS_UNKNOWN: str = "#6b7280"

    GEOFENCE_DEFAULT: str = "#257700"

    # Raster canvas background
    BACKGROUND: Tuple[int, int, int] = (236, 239, 241)


COLORS = Colors()

# Per-trip palette, cycled by Trip.color_index
TRIP_COLORS = (
    "#2563eb",  # blue
    "#9333ea",  # purple
    "#ea580c",  # orange
    "#0891b2",  # cyan
    "#db2777",  # pink
    "#65a30d",  # lime
    "#b45309",  # amber
    "#4f46e5",  # indigo
)


# =============================================================================
# Playback Clock
# =============================================================================

TICK_INTERVAL_MS = 100        # Clock advances progress every 100 ms
PROGRESS_STEP = 0.05          # Percentage points per tick at 1x speed
DEFAULT_SPEED = 1.0
SPEED_OPTIONS = (0.25, 0.5, 1.0, 2.0, 4.0)
END_GRACE_MS = 600            # Hold at 100% before auto-reset to 0
SKIP_STEP = 10.0              # Skip forward/backward, percentage points
PROGRESS_MIN = 0.0
PROGRESS_MAX = 100.0


# =============================================================================
# Trip Segmentation
# =============================================================================

TRIP_GAP_MINUTES = 30         # Gap that starts a new inferred trip
MIN_TRIP_POINTS = 2
MIN_TRIP_DISTANCE_KM = 0.01   # Trips shorter than this are noise
KM_PER_DEGREE = 111.0         # Flat-earth approximation used for trip distance


# =============================================================================
# Sample Validity
# =============================================================================

NULL_ISLAND_EPSILON = 0.001   # |lat| and |lng| below this are placeholder fixes
EPOCH_MS_THRESHOLD = 1e11     # Epoch numbers above this are milliseconds


# =============================================================================
# Overlay Z-Order Bands (higher draws on top)
# =============================================================================

Z_TRACK_LINE = 0
Z_GEOFENCE_SHAPE = 100
Z_ROUTE_HIGHLIGHT = 150
Z_TRIP_LINE = 200
Z_TRIP_LINE_SELECTED_BONUS = 50
Z_SAMPLE_MARKER = 500
Z_LIVE_VEHICLE = 1000
Z_GEOFENCE_MARKER = 1500
Z_TRIP_MARKER = 2000
Z_TRIP_MARKER_STEP = 10       # Later trips draw above earlier ones
Z_TRIP_MARKER_MAX_INDEX = 499  # Keeps the trip band below the selected band
Z_SELECTED_TRIP = 8000
Z_ENDPOINT_FLAG = 10000


# =============================================================================
# Marker Sizing (pixels, linear in zoom then clamped)
# =============================================================================

TRIP_MARKER_DIAMETER = (2.0, -4.0, 14, 32)   # (slope, intercept, min, max)
TRIP_BADGE_SIZE = (1.0, -2.0, 10, 20)
TRIP_FONT_SIZE = (0.75, -1.0, 9, 16)

FLAG_MARKER_SIZE = 24
LIVE_MARKER_SIZE = 20
SAMPLE_MARKER_SIZE = 10
GEOFENCE_MARKER_SIZE = 28

TRACK_LINE_WEIGHT = 4
TRACK_LINE_OPACITY = 0.8
TRIP_LINE_WEIGHT = 3
TRIP_LINE_SELECTED_WEIGHT = 6
TRIP_LINE_DASH = (8, 6)
ROUTE_HIGHLIGHT_WEIGHT = 14
ROUTE_HIGHLIGHT_OPACITY = 0.35
GEOFENCE_FILL_OPACITY = 0.2


# =============================================================================
# Anti-Collision Placement
# =============================================================================

COLLISION_MAX_ATTEMPTS = 8
COLLISION_ANGLE_STEP_DEG = 45.0
COLLISION_RADIUS_GROWTH = 0.5  # Each retry moves half a min-distance further out
TILE_SIZE = 256                # Web map tile size for degrees-per-pixel


# =============================================================================
# Viewport
# =============================================================================

DEFAULT_CENTER = (30.3753, 69.3451)
DEFAULT_ZOOM = 6
MIN_ZOOM = 3
MAX_ZOOM = 20
MAX_AUTO_ZOOM = 17            # Fit never zooms closer than this
FIT_PADDING_PX = 20
DEFAULT_CANVAS_SIZE = (1024, 768)


# =============================================================================
# Geofences
# =============================================================================

GEOFENCE_MIN_RADIUS_M = 1.0
GEOFENCE_MAX_RADIUS_M = 100000.0
POLYGON_MIN_VERTICES = 3
CIRCLE_APPROX_SEGMENTS = 48
METERS_PER_DEGREE = 111320.0
