"""
Viewport controller for the replay map.

Keeps the camera fitted to the track until the user takes over by panning
or zooming; from then on the camera is left alone until the next track load
or render-mode change.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from constants import (
    DEFAULT_CENTER,
    DEFAULT_ZOOM,
    FIT_PADDING_PX,
    MAX_AUTO_ZOOM,
    MAX_ZOOM,
    MIN_ZOOM,
    TILE_SIZE,
)
from overlays import MapCanvas
from session_state import ReplaySessionState
from track_model import Track

logger = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]  # (south, west, north, east)

MERCATOR_MAX_LAT = 85.05112878


@dataclass(frozen=True)
class ViewportState:
    """Camera state published to observers."""
    center_lat: float
    center_lng: float
    zoom: float
    user_overridden: bool = False
    fullscreen: bool = False


def latlon_to_pixel(lat: float, lon: float, zoom: float) -> Tuple[float, float]:
    """Convert lat/lon to absolute Web-Mercator pixel coordinates at a zoom level."""
    lat = max(-MERCATOR_MAX_LAT, min(MERCATOR_MAX_LAT, lat))
    n = 2 ** zoom
    pixel_x = (lon + 180.0) / 360.0 * n * TILE_SIZE
    lat_rad = math.radians(lat)
    pixel_y = (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n * TILE_SIZE
    return pixel_x, pixel_y


def fit_zoom(bounds: Bounds, size: Tuple[int, int], padding: int = FIT_PADDING_PX,
             min_zoom: int = MIN_ZOOM, max_zoom: int = MAX_AUTO_ZOOM) -> int:
    """
    Largest integer zoom at which the bounds fit inside the padded canvas.

    Args:
        bounds: (south, west, north, east)
        size: Canvas (width, height) in pixels
        padding: Margin kept free on every side, in pixels

    Returns:
        Zoom level in [min_zoom, max_zoom]
    """
    south, west, north, east = bounds
    avail_w = max(1, size[0] - 2 * padding)
    avail_h = max(1, size[1] - 2 * padding)

    for zoom in range(max_zoom, min_zoom - 1, -1):
        x1, y1 = latlon_to_pixel(north, west, zoom)
        x2, y2 = latlon_to_pixel(south, east, zoom)
        if abs(x2 - x1) <= avail_w and abs(y2 - y1) <= avail_h:
            return zoom
    return min_zoom


class ViewportController:
    """
    Owns camera auto-follow versus user override.

    Args:
        canvas: Map canvas whose camera is driven
        session: Session state the viewport is published to
        default_center: Camera center used for empty tracks
        default_zoom: Zoom used for empty tracks
        padding: Fit padding in pixels
    """

    def __init__(
        self,
        canvas: MapCanvas,
        session: Optional[ReplaySessionState] = None,
        default_center: Tuple[float, float] = DEFAULT_CENTER,
        default_zoom: float = DEFAULT_ZOOM,
        padding: int = FIT_PADDING_PX,
    ):
        self.canvas = canvas
        self.session = session or ReplaySessionState()
        self.default_center = default_center
        self.default_zoom = default_zoom
        self.padding = padding
        self._bounds: Optional[Bounds] = None
        self._state = ViewportState(
            center_lat=canvas.center[0],
            center_lng=canvas.center[1],
            zoom=canvas.zoom,
        )
        self.session.publish_viewport(self._state)

    @property
    def state(self) -> ViewportState:
        return self._state

    @property
    def user_overridden(self) -> bool:
        return self._state.user_overridden

    def _set_state(self, state: ViewportState) -> None:
        self._state = state
        self.session.publish_viewport(state)

    def _apply_view(self, lat: float, lng: float, zoom: float) -> None:
        self.canvas.set_view(lat, lng, zoom)
        self._set_state(replace(self._state, center_lat=lat, center_lng=lng, zoom=zoom))

    def _fit(self) -> None:
        if self._bounds is None:
            self._apply_view(self.default_center[0], self.default_center[1], self.default_zoom)
            return
        south, west, north, east = self._bounds
        zoom = fit_zoom(self._bounds, self.canvas.size, self.padding)
        self._apply_view((south + north) / 2.0, (west + east) / 2.0, zoom)

    def auto_fit(self) -> bool:
        """Fit the camera to the track unless the user has taken over."""
        if self._state.user_overridden:
            return False
        self._fit()
        return True

    def on_track_loaded(self, track: Track) -> None:
        """New track: return to auto-follow and fit to its extent."""
        self._bounds = track.bounds
        self._set_state(replace(self._state, user_overridden=False))
        self.auto_fit()

    def on_render_mode_changed(self) -> None:
        """Render mode changed: return to auto-follow and refit."""
        self._set_state(replace(self._state, user_overridden=False))
        self.auto_fit()

    def on_user_pan_start(self) -> None:
        if not self._state.user_overridden:
            logger.debug("User pan: auto-fit suspended")
        self._set_state(replace(self._state, user_overridden=True))

    def on_user_zoom_start(self) -> None:
        if not self._state.user_overridden:
            logger.debug("User zoom: auto-fit suspended")
        self._set_state(replace(self._state, user_overridden=True))

    def on_move_end(self, lat: float, lng: float) -> None:
        """Record the center the canvas reports after a pan."""
        self._set_state(replace(self._state, center_lat=lat, center_lng=lng))

    def on_zoom_end(self, zoom: float) -> None:
        """Record the zoom the canvas reports after a zoom."""
        self._set_state(replace(self._state, zoom=zoom))

    def zoom_in(self) -> float:
        """Zoom in one level (user-initiated, suspends auto-fit)."""
        return self._step_zoom(1)

    def zoom_out(self) -> float:
        """Zoom out one level (user-initiated, suspends auto-fit)."""
        return self._step_zoom(-1)

    def _step_zoom(self, delta: int) -> float:
        self.on_user_zoom_start()
        zoom = max(MIN_ZOOM, min(MAX_ZOOM, self._state.zoom + delta))
        self._apply_view(self._state.center_lat, self._state.center_lng, zoom)
        return zoom

    def fit_to_bounds(self) -> None:
        """Explicit fit request: fit now and resume auto-follow."""
        self._set_state(replace(self._state, user_overridden=False))
        self._fit()

    def toggle_fullscreen(self) -> bool:
        enabled = not self._state.fullscreen
        self.canvas.set_fullscreen(enabled)
        self._set_state(replace(self._state, fullscreen=enabled))
        return enabled
