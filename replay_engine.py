"""
Replay session: the engine façade a host UI talks to.

Wires the playback clock, interpolator, trip segmenter, render mode and
viewport controllers and the overlay layer manager around one map canvas.
Every state change ends in a full redraw by the layer manager.

Example:
    canvas = RecordingCanvas()
    session = ReplaySession(canvas)
    session.load_track(samples, trips=None)
    session.play()
    session.scheduler.advance(1000)
    session.session_state.current_index.value
"""

import logging
import random
from typing import Any, Callable, Iterable, List, Optional

from config import ReplayConfig
from geofence_connector import GeofenceState
from interpolator import InterpolatedPosition, interpolate
from overlay_manager import OverlayLayerManager
from overlays import MapCanvas
from playback import ManualScheduler, PlaybackClock, Scheduler
from render_mode import RenderModeController, RenderModeState
from session_state import ReplaySessionState
from track_model import Track, Trip, normalize_track
from trip_segmenter import segment_trips
from viewport import ViewportController, ViewportState

logger = logging.getLogger(__name__)


class ReplaySession:
    """
    One replay session bound to one map canvas.

    Args:
        canvas: Rendering backend
        config: Replay settings (read from the session store when omitted)
        session_state: Injectable state container for published outputs
        scheduler: Timer source for the playback clock (virtual time by default)
        rng: Random source for anti-collision fallback placement

    Raises:
        pydantic.ValidationError: If the configuration in the store is invalid
    """

    def __init__(
        self,
        canvas: MapCanvas,
        config: Optional[ReplayConfig] = None,
        session_state: Optional[ReplaySessionState] = None,
        scheduler: Optional[Scheduler] = None,
        rng: Optional[random.Random] = None,
    ):
        self.session_state = session_state or ReplaySessionState()
        self.config = config or ReplayConfig.from_store(self.session_state.store)
        self.canvas = canvas
        self.scheduler = scheduler or ManualScheduler()

        self.render_mode = RenderModeController()
        self.layers = OverlayLayerManager(canvas, rng=rng)
        self.viewport = ViewportController(
            canvas,
            self.session_state,
            default_center=self.config.default_center,
            default_zoom=self._empty_track_zoom(),
            padding=self.config.fit_padding_px,
        )
        self.clock = PlaybackClock(
            self.scheduler,
            tick_interval_ms=self.config.tick_interval_ms,
            progress_step=self.config.progress_step,
            speed=self.config.speed_multiplier,
            end_grace_ms=self.config.end_grace_ms,
        )

        self.track = Track()
        self.trips: List[Trip] = []
        self.geofence_state = GeofenceState()
        self.live_position: Optional[InterpolatedPosition] = None
        self._trip_input: Optional[List[Any]] = None
        self._closed = False

        self._unsubscribers: List[Callable[[], None]] = [
            self.render_mode.subscribe(self._on_render_mode_changed),
            self.clock.subscribe(self._on_progress),
        ]
        self.viewport.on_track_loaded(self.track)
        self._sync_zoom()

    def _empty_track_zoom(self) -> float:
        if self.config.initial_zoom is not None:
            return self.config.initial_zoom
        return self.config.default_zoom

    # -- read-only views -----------------------------------------------------

    @property
    def progress(self) -> float:
        return self.clock.progress

    @property
    def playing(self) -> bool:
        return self.clock.playing

    @property
    def mode(self) -> RenderModeState:
        return self.render_mode.state

    @property
    def viewport_state(self) -> ViewportState:
        return self.viewport.state

    @property
    def current_index(self) -> Optional[int]:
        return self.session_state.current_index.value

    @property
    def overlay_count(self) -> int:
        return self.layers.overlay_count

    # -- data inputs ---------------------------------------------------------

    def load_track(self, samples: Optional[Iterable[Any]], trips: Optional[Iterable[Any]] = None) -> Track:
        """
        Replace the track (and trip list) being replayed.

        Playback stops and rewinds, the camera returns to auto-follow and
        fits the new track, and trips are re-segmented.

        Args:
            samples: Raw sample records or a Track
            trips: External trip list, or None to infer trips from time gaps

        Returns:
            The normalized Track
        """
        self.track = normalize_track(samples)
        logger.info("Loaded track with %d samples (%d with valid position)",
                    len(self.track), len(self.track.valid_indices))
        self.clock.track_length = len(self.track)
        self._trip_input = list(trips) if trips is not None else None
        self._resegment()
        self.viewport.on_track_loaded(self.track)
        self._sync_zoom()
        # stop() notifies, which refreshes the live position and redraws
        self.clock.stop()
        return self.track

    def set_trips(self, trips: Optional[Iterable[Any]]) -> List[Trip]:
        """Replace the external trip list (None switches to inferred trips)."""
        self._trip_input = list(trips) if trips is not None else None
        self._resegment()
        self.redraw()
        return self.trips

    def _resegment(self) -> None:
        self.trips = segment_trips(
            self.track,
            self._trip_input,
            gap_minutes=self.config.trip_gap_minutes,
            min_distance_km=self.config.min_trip_distance_km,
        )
        logger.debug("Segmented %d trips", len(self.trips))
        self.render_mode.set_trip_count(len(self.trips))

    def set_geofence_state(self, shapes: Optional[Iterable[Any]] = None,
                           show_geofences: bool = False, show_shapes: bool = False) -> None:
        self.geofence_state = GeofenceState(
            shapes=list(shapes or []),
            show_geofences=show_geofences,
            show_shapes=show_shapes,
        )
        self.redraw()

    # -- render mode ---------------------------------------------------------

    def set_display_mode(self, mode) -> bool:
        """
        Raises:
            ValueError: If mode is not 'line' or 'marker'
        """
        return self.render_mode.set_display_mode(mode)

    def set_trip_markers_visible(self, visible: bool) -> bool:
        return self.render_mode.set_trip_markers_visible(visible)

    def toggle_trip_markers(self) -> bool:
        return self.render_mode.toggle_trip_markers()

    def select_trip(self, index: Optional[int]) -> bool:
        return self.render_mode.select_trip(index)

    def _on_render_mode_changed(self, old: RenderModeState, new: RenderModeState) -> None:
        if old.display_mode != new.display_mode:
            self.viewport.on_render_mode_changed()
            self._sync_zoom()
        self.redraw()

    # -- playback ------------------------------------------------------------

    def play(self) -> None:
        self.clock.play()

    def pause(self) -> None:
        self.clock.pause()

    def toggle_play(self) -> bool:
        return self.clock.toggle()

    def stop(self) -> None:
        self.clock.stop()

    def restart(self) -> None:
        self.clock.restart()

    def seek(self, progress: float) -> float:
        return self.clock.seek(progress)

    def seek_to_index(self, index: int) -> Optional[float]:
        """Seek to the progress of a sample index, e.g. from a table row click."""
        return self.clock.seek_to_index(index)

    def skip_forward(self) -> float:
        return self.clock.skip_forward()

    def skip_backward(self) -> float:
        return self.clock.skip_backward()

    def set_speed(self, speed: float) -> None:
        """
        Raises:
            ValueError: If speed is not a positive number
        """
        self.clock.set_speed(speed)

    def _on_progress(self, progress: float, playing: bool) -> None:
        self.live_position = interpolate(self.track, progress)
        index = self.live_position.display_index if self.live_position is not None else None
        self.session_state.publish_index(index)
        self.redraw()

    # -- canvas events and camera commands ------------------------------------

    def on_user_pan_start(self) -> None:
        self.viewport.on_user_pan_start()

    def on_user_zoom_start(self) -> None:
        self.viewport.on_user_zoom_start()

    def on_move_end(self, lat: float, lng: float) -> None:
        self.viewport.on_move_end(lat, lng)

    def on_zoom_end(self, zoom: float) -> None:
        self.viewport.on_zoom_end(zoom)
        self.layers.on_zoom_end(zoom)

    def zoom_in(self) -> float:
        zoom = self.viewport.zoom_in()
        self.layers.on_zoom_end(zoom)
        return zoom

    def zoom_out(self) -> float:
        zoom = self.viewport.zoom_out()
        self.layers.on_zoom_end(zoom)
        return zoom

    def fit_to_bounds(self) -> None:
        self.viewport.fit_to_bounds()
        self.layers.on_zoom_end(self.viewport.state.zoom)

    def toggle_fullscreen(self) -> bool:
        return self.viewport.toggle_fullscreen()

    def _sync_zoom(self) -> None:
        self.layers.set_zoom(self.viewport.state.zoom)

    # -- redraw and teardown -------------------------------------------------

    def redraw(self) -> int:
        """Clear the canvas and materialize the overlay set for the current state."""
        if self._closed:
            return 0
        mode = self.render_mode.state
        return self.layers.redraw(
            self.track,
            trips=self.trips,
            selected_trip_index=mode.selected_trip_index,
            render_mode=mode,
            live_position=self.live_position,
            geofence_state=self.geofence_state,
            playing=self.clock.playing,
        )

    def teardown(self) -> None:
        """Stop playback, cancel timers and remove every overlay."""
        if self._closed:
            return
        self._closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.clock.teardown()
        self.layers.clear()
        logger.debug("Replay session torn down")

    def __enter__(self) -> "ReplaySession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()
