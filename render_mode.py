"""
Render mode state machine.

Gates which overlay sets the layer manager may create:
- display mode: "line" (track + endpoints) or "marker" (every sample)
- whether per-trip markers are visible
- which trip, if any, is selected

Marker mode and per-trip overlays are mutually exclusive.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class DisplayMode(str, Enum):
    LINE = "line"
    MARKER = "marker"

    @classmethod
    def parse(cls, value) -> "DisplayMode":
        """Parse a display mode name.

        Raises:
            ValueError: If the name is not a known mode
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid display mode: {value!r}. Use 'line' or 'marker'.")


@dataclass(frozen=True)
class RenderModeState:
    """Snapshot of the render mode."""
    display_mode: DisplayMode = DisplayMode.LINE
    trip_markers_visible: bool = False
    selected_trip_index: Optional[int] = None


RenderModeListener = Callable[[RenderModeState, RenderModeState], None]


class RenderModeController:
    """
    Owns the render mode for one playback session.

    Listeners are called with (old_state, new_state) after every transition
    that actually changes the state.

    Example:
        controller = RenderModeController()
        controller.subscribe(lambda old, new: manager_needs_redraw())
        controller.set_trip_markers_visible(True)
        controller.select_trip(2)
        controller.set_display_mode("marker")  # clears markers and selection
    """

    def __init__(self, initial: Optional[RenderModeState] = None):
        self._state = initial or RenderModeState()
        self._listeners: List[RenderModeListener] = []
        self._trip_count: Optional[int] = None

    @property
    def state(self) -> RenderModeState:
        return self._state

    @property
    def display_mode(self) -> DisplayMode:
        return self._state.display_mode

    @property
    def trip_markers_visible(self) -> bool:
        return self._state.trip_markers_visible

    @property
    def selected_trip_index(self) -> Optional[int]:
        return self._state.selected_trip_index

    def subscribe(self, listener: RenderModeListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, new_state: RenderModeState) -> bool:
        if new_state == self._state:
            return False
        old_state, self._state = self._state, new_state
        logger.debug("Render mode %s -> %s", old_state, new_state)
        for listener in list(self._listeners):
            listener(old_state, new_state)
        return True

    def set_display_mode(self, mode) -> bool:
        """
        Switch between line and marker mode.

        Entering marker mode hides trip markers and clears the selection.

        Raises:
            ValueError: If mode is not a known display mode
        """
        mode = DisplayMode.parse(mode)
        if mode == DisplayMode.MARKER:
            new_state = RenderModeState(display_mode=mode)
        else:
            new_state = replace(self._state, display_mode=mode)
        return self._transition(new_state)

    def set_trip_markers_visible(self, visible: bool) -> bool:
        """
        Show or hide per-trip markers.

        Hiding them clears the trip selection. Showing them in marker mode
        is rejected.
        """
        if visible and self._state.display_mode == DisplayMode.MARKER:
            logger.warning("Trip markers are not available in marker mode")
            return False
        if visible:
            return self._transition(replace(self._state, trip_markers_visible=True))
        return self._transition(replace(
            self._state, trip_markers_visible=False, selected_trip_index=None,
        ))

    def toggle_trip_markers(self) -> bool:
        return self.set_trip_markers_visible(not self._state.trip_markers_visible)

    def select_trip(self, index: Optional[int]) -> bool:
        """
        Select a trip by index, or clear the selection with None.

        Selecting in line mode also makes trip markers visible, since the
        selection is only shown through them.

        Returns:
            False if the selection was rejected (marker mode, or index out of
            range of the known trips); the caller should tell the user.
        """
        if index is None:
            self._transition(replace(self._state, selected_trip_index=None))
            return True

        if self._state.display_mode == DisplayMode.MARKER:
            logger.warning("Cannot select trip %d in marker mode", index)
            return False
        if index < 0 or (self._trip_count is not None and index >= self._trip_count):
            logger.warning("Cannot select trip %d: %s trips available", index, self._trip_count)
            return False

        self._transition(replace(
            self._state, trip_markers_visible=True, selected_trip_index=index,
        ))
        return True

    def set_trip_count(self, count: Optional[int]) -> None:
        """Record how many trips exist; drops a selection that is now out of range."""
        self._trip_count = count
        selected = self._state.selected_trip_index
        if selected is not None and count is not None and selected >= count:
            self._transition(replace(self._state, selected_trip_index=None))

    def reset(self) -> None:
        """Return to the initial state (line mode, no trip markers, no selection)."""
        self._transition(RenderModeState())
