"""
Tests for the viewport controller.

Tests fit-to-bounds zoom selection, auto-follow versus user override and
the publishing of viewport state.
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import DEFAULT_CENTER, DEFAULT_ZOOM, MAX_AUTO_ZOOM, MAX_ZOOM, MIN_ZOOM
from session_state import ReplaySessionState
from viewport import ViewportController, ViewportState, fit_zoom, latlon_to_pixel
from conftest import BASE_LAT, BASE_LNG


@pytest.fixture
def session():
    return ReplaySessionState()


@pytest.fixture
def viewport(recording_canvas, session):
    return ViewportController(recording_canvas, session=session)


def pixel_extent(bounds, zoom):
    south, west, north, east = bounds
    x1, y1 = latlon_to_pixel(north, west, zoom)
    x2, y2 = latlon_to_pixel(south, east, zoom)
    return abs(x2 - x1), abs(y2 - y1)


class TestLatLonToPixel:
    """Tests for Web-Mercator projection."""

    def test_origin_is_tile_center(self):
        assert latlon_to_pixel(0.0, 0.0, 0) == pytest.approx((128.0, 128.0))

    def test_doubles_per_zoom(self):
        x0, y0 = latlon_to_pixel(BASE_LAT, BASE_LNG, 10)
        x1, y1 = latlon_to_pixel(BASE_LAT, BASE_LNG, 11)
        assert x1 == pytest.approx(2 * x0)
        assert y1 == pytest.approx(2 * y0)

    def test_poles_are_clamped(self):
        _, y = latlon_to_pixel(90.0, 0.0, 0)
        assert y == pytest.approx(0.0, abs=1e-6)


class TestFitZoom:
    """Tests for fit_zoom."""

    def test_single_point_uses_max_auto_zoom(self):
        assert fit_zoom((BASE_LAT, BASE_LNG, BASE_LAT, BASE_LNG), (800, 600)) == MAX_AUTO_ZOOM

    def test_fitted_zoom_is_the_largest_that_fits(self):
        """The chosen zoom fits the padded canvas and one level more does not."""
        bounds = (BASE_LAT, BASE_LNG, BASE_LAT + 0.04, BASE_LNG + 0.02)
        zoom = fit_zoom(bounds, (800, 600), padding=20)
        w, h = pixel_extent(bounds, zoom)
        assert w <= 760 and h <= 560
        w, h = pixel_extent(bounds, zoom + 1)
        assert w > 760 or h > 560

    def test_huge_extent_uses_min_zoom(self):
        assert fit_zoom((-80.0, -179.0, 80.0, 179.0), (800, 600)) == MIN_ZOOM

    def test_padding_can_lower_zoom(self):
        bounds = (BASE_LAT, BASE_LNG, BASE_LAT + 0.04, BASE_LNG)
        assert fit_zoom(bounds, (800, 600), padding=250) <= fit_zoom(bounds, (800, 600), padding=0)


class TestAutoFollow:
    """Tests for track-load fitting and user override."""

    def test_initial_state_from_canvas(self, viewport, session):
        assert viewport.state == ViewportState(DEFAULT_CENTER[0], DEFAULT_CENTER[1], DEFAULT_ZOOM)
        assert session.viewport.value == viewport.state

    def test_track_load_fits_to_center(self, viewport, recording_canvas, five_point_track):
        viewport.on_track_loaded(five_point_track)
        south, west, north, east = five_point_track.bounds
        assert viewport.state.center_lat == pytest.approx((south + north) / 2)
        assert viewport.state.center_lng == pytest.approx(BASE_LNG)
        assert recording_canvas.center == (viewport.state.center_lat, viewport.state.center_lng)
        assert recording_canvas.zoom == viewport.state.zoom

    def test_empty_track_uses_default_region(self, viewport, recording_canvas, empty_track):
        recording_canvas.set_view(BASE_LAT, BASE_LNG, 15)
        viewport.on_track_loaded(empty_track)
        assert recording_canvas.center == DEFAULT_CENTER
        assert recording_canvas.zoom == DEFAULT_ZOOM

    def test_user_pan_suspends_auto_fit(self, viewport, recording_canvas, five_point_track):
        viewport.on_track_loaded(five_point_track)
        viewport.on_user_pan_start()
        views_before = len(recording_canvas.view_history)
        assert viewport.auto_fit() is False
        assert len(recording_canvas.view_history) == views_before
        assert viewport.user_overridden

    def test_user_zoom_suspends_auto_fit(self, viewport):
        viewport.on_user_zoom_start()
        assert viewport.auto_fit() is False

    def test_new_track_clears_override(self, viewport, five_point_track, gap_track):
        viewport.on_track_loaded(five_point_track)
        viewport.on_user_pan_start()
        viewport.on_track_loaded(gap_track)
        assert not viewport.user_overridden

    def test_render_mode_change_clears_override_and_refits(self, viewport, recording_canvas,
                                                          five_point_track):
        viewport.on_track_loaded(five_point_track)
        fitted = recording_canvas.center
        viewport.on_user_pan_start()
        viewport.on_move_end(0.5, 0.5)
        viewport.on_render_mode_changed()
        assert not viewport.user_overridden
        assert recording_canvas.center == fitted

    def test_move_and_zoom_end_record_canvas_state(self, viewport):
        viewport.on_move_end(10.0, 20.0)
        viewport.on_zoom_end(9)
        assert (viewport.state.center_lat, viewport.state.center_lng) == (10.0, 20.0)
        assert viewport.state.zoom == 9


class TestCommands:
    """Tests for user camera commands."""

    def test_zoom_in_and_out(self, viewport, recording_canvas):
        assert viewport.zoom_in() == DEFAULT_ZOOM + 1
        assert recording_canvas.zoom == DEFAULT_ZOOM + 1
        assert viewport.user_overridden
        assert viewport.zoom_out() == DEFAULT_ZOOM

    def test_zoom_is_clamped(self, viewport):
        viewport.on_zoom_end(MAX_ZOOM)
        assert viewport.zoom_in() == MAX_ZOOM
        viewport.on_zoom_end(MIN_ZOOM)
        assert viewport.zoom_out() == MIN_ZOOM

    def test_fit_to_bounds_resumes_auto_follow(self, viewport, recording_canvas, five_point_track):
        viewport.on_track_loaded(five_point_track)
        fitted = (recording_canvas.center, recording_canvas.zoom)
        viewport.zoom_in()
        viewport.fit_to_bounds()
        assert not viewport.user_overridden
        assert (recording_canvas.center, recording_canvas.zoom) == fitted

    def test_toggle_fullscreen(self, viewport, recording_canvas):
        assert viewport.toggle_fullscreen() is True
        assert recording_canvas.fullscreen
        assert viewport.state.fullscreen
        assert viewport.toggle_fullscreen() is False
        assert not recording_canvas.fullscreen


class TestPublishing:
    """Tests for viewport publishing to the session state."""

    def test_every_change_is_published(self, viewport, session):
        published = []
        session.subscribe_viewport(published.append)
        viewport.on_user_pan_start()
        viewport.zoom_in()
        assert published[-1] == viewport.state
        assert published[0].user_overridden
        assert published[-1].zoom == DEFAULT_ZOOM + 1

    def test_unchanged_state_not_republished(self, viewport, session):
        published = []
        session.subscribe_viewport(published.append)
        viewport.on_user_pan_start()
        viewport.on_user_pan_start()
        assert len(published) == 1
