"""
Overlay abstraction layer for the replay map.

Provides the overlay descriptor types, the small capability interface a map
canvas must implement, and the registry of materialized overlays.
"""

import math
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from constants import (
    CIRCLE_APPROX_SEGMENTS,
    DEFAULT_CANVAS_SIZE,
    DEFAULT_CENTER,
    DEFAULT_ZOOM,
    METERS_PER_DEGREE,
)

LatLng = Tuple[float, float]


class OverlayKind(str, Enum):
    """What an overlay represents on the map."""
    TRACK_LINE = "trackLine"
    START_FLAG = "startFlag"
    END_FLAG = "endFlag"
    SAMPLE_MARKER = "sampleMarker"
    LIVE_VEHICLE = "liveVehicle"
    TRIP_START = "tripStart"
    TRIP_END = "tripEnd"
    TRIP_LINE = "tripLine"
    GEOFENCE_MARKER = "geofenceMarker"
    GEOFENCE_SHAPE = "geofenceShape"
    ROUTE_HIGHLIGHT = "routeHighlight"


class Primitive(str, Enum):
    """Drawable primitive a canvas is asked to create."""
    POLYLINE = "polyline"
    MARKER = "marker"
    CIRCLE = "circle"
    POLYGON = "polygon"


@dataclass(frozen=True)
class OverlayStyle:
    """Visual attributes of an overlay.

    Attributes:
        color: Stroke/fill color as a hex string
        weight: Line width in pixels (lines and shape outlines)
        dash: Dash pattern (on, off) in pixels, or None for solid
        opacity: Stroke opacity 0-1
        fill_opacity: Fill opacity 0-1 (shapes)
        diameter: Marker diameter in pixels
        badge_size: Number badge size in pixels (trip markers)
        font_size: Label font size in pixels
        label: Text drawn on the marker
        radius_m: Circle radius in meters
        heading: Rotation of directional markers in degrees
    """
    color: str = "#000000"
    weight: float = 0.0
    dash: Optional[Tuple[int, int]] = None
    opacity: float = 1.0
    fill_opacity: float = 0.0
    diameter: float = 0.0
    badge_size: float = 0.0
    font_size: float = 0.0
    label: str = ""
    radius_m: float = 0.0
    heading: float = 0.0


@dataclass(frozen=True)
class OverlayDescriptor:
    """A single drawable object for the map canvas.

    Descriptors are plain values; the canvas decides how to render them.
    """
    id: str
    kind: OverlayKind
    primitive: Primitive
    geometry: Tuple[LatLng, ...]
    z_priority: int = 0
    style: OverlayStyle = field(default_factory=OverlayStyle)

    @property
    def anchor(self) -> Optional[LatLng]:
        """First coordinate (marker position, circle center)."""
        return self.geometry[0] if self.geometry else None


def circle_to_ring(center: LatLng, radius_m: float,
                   segments: int = CIRCLE_APPROX_SEGMENTS) -> Tuple[LatLng, ...]:
    """Approximate a circle by a closed ring of lat/lng points."""
    lat, lng = center
    dlat = radius_m / METERS_PER_DEGREE
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    dlng = radius_m / (METERS_PER_DEGREE * cos_lat)
    ring = []
    for i in range(segments + 1):
        angle = 2 * math.pi * i / segments
        ring.append((lat + dlat * math.sin(angle), lng + dlng * math.cos(angle)))
    return tuple(ring)


class MapCanvas(ABC):
    """
    Capability interface for a map rendering surface.

    The overlay layer manager is the only caller allowed to add or remove
    drawables. Backends implement the three drawing primitives; shapes fall
    back to closed polylines unless a backend overrides draw_shape().

    Camera state (center, zoom, fullscreen) is held here so any backend can
    report it back to the viewport controller.
    """

    def __init__(
        self,
        size: Tuple[int, int] = DEFAULT_CANVAS_SIZE,
        center: LatLng = DEFAULT_CENTER,
        zoom: float = DEFAULT_ZOOM,
    ):
        """
        Initialize canvas with viewport size and initial camera.

        Args:
            size: (width, height) of the visible map in pixels
            center: Initial (lat, lng) camera center
            zoom: Initial zoom level
        """
        self._size = size
        self._center = center
        self._zoom = zoom
        self._fullscreen = False

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the visible map in pixels."""
        return self._size

    @property
    def center(self) -> LatLng:
        return self._center

    @property
    def zoom(self) -> float:
        return self._zoom

    @property
    def fullscreen(self) -> bool:
        return self._fullscreen

    @abstractmethod
    def draw_polyline(self, descriptor: OverlayDescriptor) -> None:
        """Add a polyline through descriptor.geometry."""
        pass

    @abstractmethod
    def draw_marker(self, descriptor: OverlayDescriptor) -> None:
        """Add a marker at descriptor.anchor."""
        pass

    @abstractmethod
    def remove_all(self) -> None:
        """Remove every drawable this canvas holds."""
        pass

    def draw_shape(self, descriptor: OverlayDescriptor) -> None:
        """
        Add a circle or polygon.

        Default implementation draws the outline as a closed polyline.
        """
        if descriptor.primitive == Primitive.CIRCLE:
            ring = circle_to_ring(descriptor.anchor, descriptor.style.radius_m)
        else:
            ring = tuple(descriptor.geometry) + (descriptor.geometry[0],)
        outline = OverlayDescriptor(
            id=descriptor.id,
            kind=descriptor.kind,
            primitive=Primitive.POLYLINE,
            geometry=ring,
            z_priority=descriptor.z_priority,
            style=descriptor.style,
        )
        self.draw_polyline(outline)

    def set_view(self, lat: float, lng: float, zoom: float) -> None:
        """Move the camera."""
        self._center = (lat, lng)
        self._zoom = zoom

    def set_fullscreen(self, enabled: bool) -> None:
        self._fullscreen = enabled


def materialize(canvas: MapCanvas, descriptor: OverlayDescriptor) -> None:
    """Dispatch a descriptor to the matching canvas primitive."""
    if descriptor.primitive == Primitive.POLYLINE:
        canvas.draw_polyline(descriptor)
    elif descriptor.primitive == Primitive.MARKER:
        canvas.draw_marker(descriptor)
    else:
        canvas.draw_shape(descriptor)


class OverlayRegistry:
    """
    Registry of the overlays currently materialized on the canvas.

    Keeps registration order, which is also draw order within equal
    z-priority.

    Example:
        registry = OverlayRegistry()
        registry.register(track_line)
        registry.register(start_flag)
        registry.counts_by_kind()  # {OverlayKind.TRACK_LINE: 1, ...}
    """

    def __init__(self):
        self._overlays: Dict[str, OverlayDescriptor] = {}
        self._order: List[str] = []

    def register(self, descriptor: OverlayDescriptor) -> None:
        """
        Register a materialized overlay.

        Args:
            descriptor: Overlay that was drawn

        Raises:
            ValueError: If an overlay with the same id is already live
        """
        if descriptor.id in self._overlays:
            raise ValueError(f"Overlay {descriptor.id!r} is already materialized")
        self._order.append(descriptor.id)
        self._overlays[descriptor.id] = descriptor

    def get(self, overlay_id: str) -> Optional[OverlayDescriptor]:
        """Get an overlay by id."""
        return self._overlays.get(overlay_id)

    def clear(self) -> None:
        self._overlays.clear()
        self._order.clear()

    def counts_by_kind(self) -> Dict[OverlayKind, int]:
        return dict(Counter(d.kind for d in self))

    def __len__(self) -> int:
        return len(self._overlays)

    def __contains__(self, overlay_id: str) -> bool:
        return overlay_id in self._overlays

    def __iter__(self) -> Iterator[OverlayDescriptor]:
        for overlay_id in self._order:
            yield self._overlays[overlay_id]


class RecordingCanvas(MapCanvas):
    """
    In-memory canvas that records drawables instead of rendering them.

    Useful for headless sessions and for asserting exactly what was drawn.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.drawables: List[OverlayDescriptor] = []
        self.remove_all_calls = 0
        self.view_history: List[Tuple[float, float, float]] = []

    def draw_polyline(self, descriptor: OverlayDescriptor) -> None:
        self.drawables.append(descriptor)

    def draw_marker(self, descriptor: OverlayDescriptor) -> None:
        self.drawables.append(descriptor)

    def draw_shape(self, descriptor: OverlayDescriptor) -> None:
        self.drawables.append(descriptor)

    def remove_all(self) -> None:
        self.remove_all_calls += 1
        self.drawables.clear()

    def set_view(self, lat: float, lng: float, zoom: float) -> None:
        super().set_view(lat, lng, zoom)
        self.view_history.append((lat, lng, zoom))
