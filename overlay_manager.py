"""
Overlay layer manager for the replay map.

Sole owner of everything drawn on the map canvas. Every state change goes
through redraw(), which always clears the canvas and materializes the full
overlay set from scratch. Overlays are never patched in place: a redraw
with identical inputs always yields an identical overlay set, so nothing
can leak or be duplicated across rapid state changes.

Z-order bands (higher draws on top):
    start/end flags          10000
    selected trip markers     8000
    trip markers              2000 + 10 * trip index
    geofence markers          1500
    live vehicle              1000
    per-sample markers         500
    trip lines                 200 (+50 when selected)
    selected route highlight   150
    geofence shapes            100
    track line                   0
"""

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from constants import (
    COLLISION_ANGLE_STEP_DEG,
    COLLISION_MAX_ATTEMPTS,
    COLLISION_RADIUS_GROWTH,
    COLORS,
    FLAG_MARKER_SIZE,
    LIVE_MARKER_SIZE,
    ROUTE_HIGHLIGHT_OPACITY,
    ROUTE_HIGHLIGHT_WEIGHT,
    SAMPLE_MARKER_SIZE,
    TILE_SIZE,
    TRACK_LINE_OPACITY,
    TRACK_LINE_WEIGHT,
    TRIP_BADGE_SIZE,
    TRIP_COLORS,
    TRIP_FONT_SIZE,
    TRIP_LINE_DASH,
    TRIP_LINE_SELECTED_WEIGHT,
    TRIP_LINE_WEIGHT,
    TRIP_MARKER_DIAMETER,
    Z_ENDPOINT_FLAG,
    Z_LIVE_VEHICLE,
    Z_ROUTE_HIGHLIGHT,
    Z_SAMPLE_MARKER,
    Z_SELECTED_TRIP,
    Z_TRACK_LINE,
    Z_TRIP_LINE,
    Z_TRIP_LINE_SELECTED_BONUS,
    Z_TRIP_MARKER,
    Z_TRIP_MARKER_MAX_INDEX,
    Z_TRIP_MARKER_STEP,
)
from geofence_connector import GeofenceState, build_geofence_overlays
from interpolator import InterpolatedPosition
from overlays import (
    MapCanvas,
    OverlayDescriptor,
    OverlayKind,
    OverlayRegistry,
    OverlayStyle,
    Primitive,
    materialize,
)
from render_mode import DisplayMode, RenderModeState
from track_model import Track, Trip, VehicleStatus

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]


STATUS_COLORS = {
    VehicleStatus.MOVING: COLORS.STATUS_MOVING,
    VehicleStatus.IDLE: COLORS.STATUS_IDLE,
    VehicleStatus.STOP: COLORS.STATUS_STOP,
    VehicleStatus.UNKNOWN: COLORS.STATUS_UNKNOWN,
}


# =============================================================================
# Zoom-responsive sizing
# =============================================================================

def linear_size(rule: Tuple[float, float, float, float], zoom: float) -> float:
    """Evaluate a (slope, intercept, min, max) size rule at a zoom level."""
    slope, intercept, lo, hi = rule
    return max(lo, min(hi, slope * zoom + intercept))


@dataclass(frozen=True)
class MarkerSizes:
    """Trip marker dimensions in pixels for one zoom level."""
    diameter: float
    badge: float
    font: float

    @classmethod
    def for_zoom(cls, zoom: float) -> "MarkerSizes":
        return cls(
            diameter=linear_size(TRIP_MARKER_DIAMETER, zoom),
            badge=linear_size(TRIP_BADGE_SIZE, zoom),
            font=linear_size(TRIP_FONT_SIZE, zoom),
        )


def degrees_per_pixel(zoom: float) -> float:
    """Approximate map degrees covered by one screen pixel at a zoom level."""
    return 360.0 / (TILE_SIZE * (2 ** zoom))


def min_distance_for_zoom(zoom: float) -> float:
    """
    Minimum separation between trip markers, in degrees.

    One marker diameter worth of map at the current zoom: tight when zoomed
    in, loose when zoomed out.
    """
    return MarkerSizes.for_zoom(zoom).diameter * degrees_per_pixel(zoom)


# =============================================================================
# Anti-collision placement
# =============================================================================

@dataclass(frozen=True)
class PlacementResult:
    """Where a marker ended up.

    Attributes:
        position: Final (lat, lng)
        attempts: Retries used (0 when the original point was free)
        resolved: False if every retry collided and a random offset was used
    """
    position: LatLng
    attempts: int
    resolved: bool


class CollisionPlacer:
    """
    Best-effort marker placement that avoids previously placed markers.

    The original point is used if it is at least `min_distance` from every
    marker placed so far. Otherwise up to 8 candidates are tried at 45 degree
    steps around it, each further out than the last. If all collide, a
    randomly perturbed point is accepted anyway; overlap is a visual
    degradation, never an error. There is no guarantee of a globally
    overlap-free layout.
    """

    def __init__(self, min_distance: float, rng: Optional[random.Random] = None,
                 max_attempts: int = COLLISION_MAX_ATTEMPTS):
        self.min_distance = min_distance
        self.max_attempts = max_attempts
        self._rng = rng or random.Random()
        self.placed: List[LatLng] = []

    def _collides(self, point: LatLng) -> bool:
        for other in self.placed:
            if math.hypot(point[0] - other[0], point[1] - other[1]) < self.min_distance:
                return True
        return False

    def candidate(self, origin: LatLng, attempt: int) -> LatLng:
        """Retry position `attempt` (0-based) around origin."""
        angle = math.radians(attempt * COLLISION_ANGLE_STEP_DEG)
        radius = self.min_distance * (1 + COLLISION_RADIUS_GROWTH * (attempt + 1))
        return (origin[0] + radius * math.cos(angle), origin[1] + radius * math.sin(angle))

    def place(self, origin: LatLng) -> PlacementResult:
        """Place a marker near origin and remember its position."""
        if not self._collides(origin):
            result = PlacementResult(origin, 0, True)
        else:
            result = None
            for attempt in range(self.max_attempts):
                candidate = self.candidate(origin, attempt)
                if not self._collides(candidate):
                    result = PlacementResult(candidate, attempt + 1, True)
                    break
            if result is None:
                jitter = self.min_distance
                fallback = (origin[0] + self._rng.uniform(-jitter, jitter),
                            origin[1] + self._rng.uniform(-jitter, jitter))
                logger.debug("Marker at %s still collides after %d attempts",
                             origin, self.max_attempts)
                result = PlacementResult(fallback, self.max_attempts, False)

        self.placed.append(result.position)
        return result


# =============================================================================
# Layer manager
# =============================================================================

@dataclass(frozen=True)
class RedrawInputs:
    """Everything a redraw depends on besides the current zoom."""
    track: Track
    trips: Tuple[Trip, ...] = ()
    selected_trip_index: Optional[int] = None
    render_mode: RenderModeState = field(default_factory=RenderModeState)
    live_position: Optional[InterpolatedPosition] = None
    geofence_state: Optional[GeofenceState] = None
    playing: bool = False


class OverlayLayerManager:
    """
    Builds and owns every overlay on the map canvas.

    Args:
        canvas: Rendering backend implementing MapCanvas
        zoom: Zoom level used for marker sizing (defaults to the canvas zoom)
        rng: Seeds the anti-collision fallback once; every redraw replays the
            same seed so identical inputs place markers identically
    """

    def __init__(self, canvas: MapCanvas, zoom: Optional[float] = None,
                 rng: Optional[random.Random] = None):
        self.canvas = canvas
        self.registry = OverlayRegistry()
        self._zoom = canvas.zoom if zoom is None else zoom
        self._placement_seed = (rng or random.Random()).getrandbits(32)
        self._redrawing = False
        self._pending: Optional[RedrawInputs] = None
        self._last_inputs: Optional[RedrawInputs] = None
        self.last_placements: List[PlacementResult] = []
        self.redraw_count = 0

    @property
    def zoom(self) -> float:
        return self._zoom

    @property
    def overlay_count(self) -> int:
        return len(self.registry)

    def counts_by_kind(self) -> Dict[OverlayKind, int]:
        return self.registry.counts_by_kind()

    def redraw(
        self,
        track: Track,
        trips: Sequence[Trip] = (),
        selected_trip_index: Optional[int] = None,
        render_mode: Optional[RenderModeState] = None,
        live_position: Optional[InterpolatedPosition] = None,
        geofence_state: Optional[GeofenceState] = None,
        playing: bool = False,
    ) -> int:
        """
        Clear the canvas and materialize the full overlay set.

        Idempotent: identical inputs always produce an identical overlay set.
        A redraw requested while another is in progress (e.g. from a canvas
        callback) is deferred until the current one completes.

        Args:
            track: Track being replayed
            trips: Retained trips from the segmenter
            selected_trip_index: Selected trip, or None
            render_mode: Display mode and trip marker visibility
            live_position: Current interpolated vehicle position
            geofence_state: Geofence shapes and visibility flags
            playing: Whether the animation is running

        Returns:
            Number of overlays materialized
        """
        inputs = RedrawInputs(
            track=track,
            trips=tuple(trips),
            selected_trip_index=selected_trip_index,
            render_mode=render_mode or RenderModeState(),
            live_position=live_position,
            geofence_state=geofence_state,
            playing=playing,
        )
        return self.redraw_inputs(inputs)

    def redraw_inputs(self, inputs: RedrawInputs) -> int:
        """Run a redraw for a prepared set of inputs (see redraw())."""
        if self._redrawing:
            self._pending = inputs
            return len(self.registry)

        self._redrawing = True
        try:
            self._apply(inputs)
            while self._pending is not None:
                pending, self._pending = self._pending, None
                self._apply(pending)
        finally:
            self._redrawing = False
        return len(self.registry)

    def set_zoom(self, zoom: float) -> bool:
        """Store the zoom used for sizing without redrawing; True if it changed."""
        if zoom == self._zoom:
            return False
        self._zoom = zoom
        return True

    def on_zoom_end(self, zoom: float) -> None:
        """Re-materialize with marker sizes for the new zoom level."""
        if self.set_zoom(zoom) and self._last_inputs is not None:
            self.redraw_inputs(self._last_inputs)

    def clear(self) -> None:
        """Remove every overlay (session teardown)."""
        self.canvas.remove_all()
        self.registry.clear()
        self._last_inputs = None
        self._pending = None
        self.last_placements = []

    def _apply(self, inputs: RedrawInputs) -> None:
        self.canvas.remove_all()
        self.registry.clear()

        descriptors = self.build_descriptors(inputs)
        for descriptor in sorted(descriptors, key=lambda d: d.z_priority):
            self.registry.register(descriptor)
            materialize(self.canvas, descriptor)

        self._last_inputs = inputs
        self.redraw_count += 1
        logger.debug("Redraw #%d materialized %d overlays", self.redraw_count, len(self.registry))

    def build_descriptors(self, inputs: RedrawInputs) -> List[OverlayDescriptor]:
        """Compute the overlay set for a redraw without touching the canvas."""
        self.last_placements = []
        track = inputs.track
        if track.is_empty:
            return []

        mode = inputs.render_mode
        points = track.valid_points
        show_trips = (
            mode.display_mode == DisplayMode.LINE
            and mode.trip_markers_visible
            and len(inputs.trips) > 0
        )
        show_samples = mode.display_mode == DisplayMode.MARKER and not inputs.playing

        descriptors: List[OverlayDescriptor] = []
        if len(points) >= 2:
            descriptors.append(self._track_line(points))

        if points:
            if mode.display_mode == DisplayMode.LINE and not show_trips:
                descriptors.extend(self._endpoint_flags(points))
            elif show_samples:
                descriptors.extend(self._sample_markers(track))
                descriptors.extend(self._endpoint_flags(points))

        if show_trips:
            selected = inputs.selected_trip_index
            if selected is not None and not 0 <= selected < len(inputs.trips):
                selected = None
            descriptors.extend(self._trip_overlays(track, inputs.trips, selected))

        live = inputs.live_position
        if live is not None and live.has_position:
            descriptors.append(self._live_vehicle(live))

        descriptors.extend(build_geofence_overlays(inputs.geofence_state))
        return descriptors

    def _track_line(self, points: List[LatLng]) -> OverlayDescriptor:
        return OverlayDescriptor(
            id="track-line",
            kind=OverlayKind.TRACK_LINE,
            primitive=Primitive.POLYLINE,
            geometry=tuple(points),
            z_priority=Z_TRACK_LINE,
            style=OverlayStyle(color=COLORS.TRACK_LINE, weight=TRACK_LINE_WEIGHT,
                               opacity=TRACK_LINE_OPACITY),
        )

    def _endpoint_flags(self, points: List[LatLng]) -> List[OverlayDescriptor]:
        flags = []
        for kind, point, color, label in (
            (OverlayKind.START_FLAG, points[0], COLORS.START_FLAG, "S"),
            (OverlayKind.END_FLAG, points[-1], COLORS.END_FLAG, "E"),
        ):
            flags.append(OverlayDescriptor(
                id=kind.value,
                kind=kind,
                primitive=Primitive.MARKER,
                geometry=(point,),
                z_priority=Z_ENDPOINT_FLAG,
                style=OverlayStyle(color=color, diameter=FLAG_MARKER_SIZE,
                                   font_size=12, label=label),
            ))
        return flags

    def _sample_markers(self, track: Track) -> List[OverlayDescriptor]:
        markers = []
        for i, sample in enumerate(track):
            pos = sample.position
            if pos is None:
                continue
            markers.append(OverlayDescriptor(
                id=f"sample-{i}",
                kind=OverlayKind.SAMPLE_MARKER,
                primitive=Primitive.MARKER,
                geometry=(pos,),
                z_priority=Z_SAMPLE_MARKER,
                style=OverlayStyle(color=STATUS_COLORS[sample.status],
                                   diameter=SAMPLE_MARKER_SIZE, heading=sample.heading),
            ))
        return markers

    def _trip_overlays(self, track: Track, trips: Sequence[Trip],
                       selected: Optional[int]) -> List[OverlayDescriptor]:
        sizes = MarkerSizes.for_zoom(self._zoom)
        placer = CollisionPlacer(min_distance_for_zoom(self._zoom),
                                 rng=random.Random(self._placement_seed))
        descriptors = []

        for i, trip in enumerate(trips):
            points = trip.points(track)
            if not points:
                continue
            is_selected = i == selected
            color = TRIP_COLORS[trip.color_index % len(TRIP_COLORS)]

            descriptors.append(OverlayDescriptor(
                id=f"trip-line-{i}",
                kind=OverlayKind.TRIP_LINE,
                primitive=Primitive.POLYLINE,
                geometry=tuple(points),
                z_priority=Z_TRIP_LINE + (Z_TRIP_LINE_SELECTED_BONUS if is_selected else 0),
                style=OverlayStyle(
                    color=color,
                    weight=TRIP_LINE_SELECTED_WEIGHT if is_selected else TRIP_LINE_WEIGHT,
                    dash=None if is_selected else TRIP_LINE_DASH,
                    opacity=1.0 if is_selected else 0.8,
                ),
            ))

            if is_selected:
                descriptors.append(OverlayDescriptor(
                    id=f"route-highlight-{i}",
                    kind=OverlayKind.ROUTE_HIGHLIGHT,
                    primitive=Primitive.POLYLINE,
                    geometry=tuple(points),
                    z_priority=Z_ROUTE_HIGHLIGHT,
                    style=OverlayStyle(
                        color=color,
                        weight=ROUTE_HIGHLIGHT_WEIGHT,
                        opacity=ROUTE_HIGHLIGHT_OPACITY,
                    ),
                ))
                z = Z_SELECTED_TRIP
            else:
                z = Z_TRIP_MARKER + min(i, Z_TRIP_MARKER_MAX_INDEX) * Z_TRIP_MARKER_STEP
            for kind, origin in ((OverlayKind.TRIP_START, points[0]),
                                 (OverlayKind.TRIP_END, points[-1])):
                placement = placer.place(origin)
                self.last_placements.append(placement)
                descriptors.append(OverlayDescriptor(
                    id=f"{kind.value}-{i}",
                    kind=kind,
                    primitive=Primitive.MARKER,
                    geometry=(placement.position,),
                    z_priority=z,
                    style=OverlayStyle(
                        color=color,
                        diameter=sizes.diameter,
                        badge_size=sizes.badge,
                        font_size=sizes.font,
                        label=str(trip.label),
                    ),
                ))
        return descriptors

    def _live_vehicle(self, live: InterpolatedPosition) -> OverlayDescriptor:
        return OverlayDescriptor(
            id="live-vehicle",
            kind=OverlayKind.LIVE_VEHICLE,
            primitive=Primitive.MARKER,
            geometry=((live.latitude, live.longitude),),
            z_priority=Z_LIVE_VEHICLE,
            style=OverlayStyle(color=COLORS.LIVE_VEHICLE, diameter=LIVE_MARKER_SIZE,
                               heading=live.heading, label=live.status.value),
        )
