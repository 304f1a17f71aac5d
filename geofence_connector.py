"""
Geofence overlay connector.

Turns the geofence records supplied by the host application into marker and
shape overlay descriptors for the overlay layer manager. Malformed entries
are skipped, never raised.
"""

import logging
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from constants import (
    COLORS,
    GEOFENCE_FILL_OPACITY,
    GEOFENCE_MARKER_SIZE,
    GEOFENCE_MAX_RADIUS_M,
    GEOFENCE_MIN_RADIUS_M,
    POLYGON_MIN_VERTICES,
    Z_GEOFENCE_MARKER,
    Z_GEOFENCE_SHAPE,
)
from overlays import OverlayDescriptor, OverlayKind, OverlayStyle, Primitive
from track_model import is_valid_coordinate
from track_model.normalize import first_present, parse_float

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]

SHAPE_TYPE_KEYS = ("shapeType", "ShapeType", "shape_type", "type")
LATITUDE_KEYS = ("latitude", "lat", "Latitude")
LONGITUDE_KEYS = ("longitude", "lng", "lon", "Longitude")
RADIUS_KEYS = ("radius", "radiusM", "radius_m")
VERTEX_KEYS = ("vertices", "points", "Polygonlatlng", "polygonLatLng")
COLOR_KEYS = ("color", "ColorGeoFence", "colour")
NAME_KEYS = ("name", "Name", "geofenceName")
SHOW_ON_MAP_KEYS = ("chkShowOnMap", "showOnMap", "show_on_map")


class ShapeType(str, Enum):
    CIRCLE = "circle"
    POLYGON = "polygon"


class GeofenceShape(BaseModel):
    """A geofence boundary after alias normalization."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    shape_type: Optional[ShapeType] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_m: Optional[float] = None
    vertices: List[LatLng] = Field(default_factory=list)
    color: str = COLORS.GEOFENCE_DEFAULT
    icon: Optional[str] = None
    show_on_map: bool = True

    @property
    def marker_position(self) -> Optional[LatLng]:
        """Explicit center, or the vertex centroid for polygons without one."""
        if is_valid_coordinate(self.latitude, self.longitude):
            return (self.latitude, self.longitude)
        if self.shape_type == ShapeType.POLYGON and self.vertices:
            lat = sum(v[0] for v in self.vertices) / len(self.vertices)
            lng = sum(v[1] for v in self.vertices) / len(self.vertices)
            if is_valid_coordinate(lat, lng):
                return (lat, lng)
        return None


class GeofenceState(BaseModel):
    """Geofence inputs for one redraw."""
    shapes: List[Any] = Field(default_factory=list)
    show_geofences: bool = False
    show_shapes: bool = False


def _parse_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def parse_vertices(value: Any) -> List[LatLng]:
    """
    Parse polygon vertices.

    Accepts a "lat lng, lat lng, ..." string or a sequence of pairs /
    {"lat", "lng"} mappings. Unparseable vertices are dropped.
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw: Iterable[Any] = [part.split() for part in value.split(",") if part.strip()]
    else:
        raw = value

    vertices = []
    for item in raw:
        if isinstance(item, Mapping):
            lat = parse_float(first_present(item, LATITUDE_KEYS))
            lng = parse_float(first_present(item, LONGITUDE_KEYS))
        elif isinstance(item, Sequence) and not isinstance(item, str) and len(item) >= 2:
            lat, lng = parse_float(item[0]), parse_float(item[1])
        else:
            continue
        if is_valid_coordinate(lat, lng):
            vertices.append((lat, lng))
    return vertices


def normalize_geofence(record: Any) -> Optional[GeofenceShape]:
    """
    Build a GeofenceShape from a raw record.

    Returns:
        GeofenceShape, or None if the record has no id or is hidden from the map
    """
    if isinstance(record, GeofenceShape):
        return record if record.show_on_map else None
    if not isinstance(record, Mapping):
        logger.debug("Skipping geofence record that is not a mapping: %r", record)
        return None

    geofence_id = record.get("id")
    if geofence_id is None or geofence_id == "":
        logger.debug("Skipping geofence without id")
        return None
    if not _parse_bool(first_present(record, SHOW_ON_MAP_KEYS)):
        return None

    raw_type = first_present(record, SHAPE_TYPE_KEYS)
    try:
        shape_type = ShapeType(str(raw_type).strip().lower()) if raw_type is not None else None
    except ValueError:
        shape_type = None

    color = first_present(record, COLOR_KEYS)
    name = first_present(record, NAME_KEYS)
    icon = record.get("icon")
    return GeofenceShape(
        id=str(geofence_id),
        name=str(name) if name is not None else "",
        shape_type=shape_type,
        latitude=parse_float(first_present(record, LATITUDE_KEYS)),
        longitude=parse_float(first_present(record, LONGITUDE_KEYS)),
        radius_m=parse_float(first_present(record, RADIUS_KEYS)),
        vertices=parse_vertices(first_present(record, VERTEX_KEYS)),
        color=str(color) if color else COLORS.GEOFENCE_DEFAULT,
        icon=str(icon) if icon else None,
    )


def _marker_descriptor(shape: GeofenceShape, position: LatLng) -> OverlayDescriptor:
    return OverlayDescriptor(
        id=f"geofence-marker-{shape.id}",
        kind=OverlayKind.GEOFENCE_MARKER,
        primitive=Primitive.MARKER,
        geometry=(position,),
        z_priority=Z_GEOFENCE_MARKER,
        style=OverlayStyle(
            color=shape.color,
            diameter=GEOFENCE_MARKER_SIZE,
            label=shape.name,
        ),
    )


def _shape_descriptor(shape: GeofenceShape) -> Optional[OverlayDescriptor]:
    style_args = dict(color=shape.color, weight=2, opacity=0.8,
                      fill_opacity=GEOFENCE_FILL_OPACITY)

    if shape.shape_type == ShapeType.CIRCLE:
        center = (shape.latitude, shape.longitude)
        if not is_valid_coordinate(*center) or not shape.radius_m:
            logger.debug("Geofence %s: circle without center/radius, no shape", shape.id)
            return None
        radius = max(GEOFENCE_MIN_RADIUS_M, min(shape.radius_m, GEOFENCE_MAX_RADIUS_M))
        return OverlayDescriptor(
            id=f"geofence-shape-{shape.id}",
            kind=OverlayKind.GEOFENCE_SHAPE,
            primitive=Primitive.CIRCLE,
            geometry=(center,),
            z_priority=Z_GEOFENCE_SHAPE,
            style=OverlayStyle(radius_m=radius, **style_args),
        )

    if shape.shape_type == ShapeType.POLYGON:
        if len(shape.vertices) < POLYGON_MIN_VERTICES:
            logger.debug("Geofence %s: polygon with %d vertices, no shape",
                         shape.id, len(shape.vertices))
            return None
        return OverlayDescriptor(
            id=f"geofence-shape-{shape.id}",
            kind=OverlayKind.GEOFENCE_SHAPE,
            primitive=Primitive.POLYGON,
            geometry=tuple(shape.vertices),
            z_priority=Z_GEOFENCE_SHAPE,
            style=OverlayStyle(**style_args),
        )

    return None


def build_geofence_overlays(state: Optional[GeofenceState]) -> List[OverlayDescriptor]:
    """
    Produce geofence overlay descriptors.

    Markers are produced whenever show_geofences is set; shapes only when
    show_shapes is set as well. Entries with missing coordinates yield no
    marker, and malformed shapes yield no shape.

    Args:
        state: Geofence inputs, or None

    Returns:
        Marker and shape descriptors in input order
    """
    if state is None or not state.show_geofences:
        return []

    descriptors: List[OverlayDescriptor] = []
    seen = set()
    for record in state.shapes:
        shape = normalize_geofence(record)
        if shape is None:
            continue
        if shape.id in seen:
            logger.debug("Skipping duplicate geofence id %s", shape.id)
            continue
        seen.add(shape.id)

        position = shape.marker_position
        if position is None:
            logger.debug("Geofence %s has no usable coordinates, skipped", shape.id)
            continue
        descriptors.append(_marker_descriptor(shape, position))

        if state.show_shapes:
            shape_descriptor = _shape_descriptor(shape)
            if shape_descriptor is not None:
                descriptors.append(shape_descriptor)
    return descriptors
