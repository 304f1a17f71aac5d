"""
Tests for the headless replay CLI.

Tests input file loading and end-to-end runs of main() on small JSON
fixtures written to tmp_path.
"""

import json

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main as cli
from main import InputError, load_list_file, load_track_file, main, parse_args, run
from replay_engine import ReplaySession
from conftest import raw_record

SAMPLES = [raw_record(i, m) for i, m in enumerate([0, 1, 2, 42, 43])]


def write_json(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(json.dumps(data))
    return str(path)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = parse_args(["track.json"])
        assert args.mode == "line"
        assert args.play_seconds == 0.0
        assert args.size == [1024, 768]
        assert not args.trip_markers

    def test_bad_mode_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["track.json", "--mode", "heatmap"])


class TestLoadTrackFile:
    """Tests for load_track_file."""

    def test_plain_list(self, tmp_path):
        samples, trips, geofences = load_track_file(write_json(tmp_path, "t.json", SAMPLES))
        assert len(samples) == 5
        assert trips is None
        assert geofences == []

    def test_object_with_samples_trips_geofences(self, tmp_path):
        path = write_json(tmp_path, "t.json", {
            "samples": SAMPLES,
            "trips": [],
            "geofences": [{"id": 1}],
        })
        samples, trips, geofences = load_track_file(path)
        assert len(samples) == 5
        assert trips == []
        assert geofences == [{"id": 1}]

    def test_data_key(self, tmp_path):
        samples, _, _ = load_track_file(write_json(tmp_path, "t.json", {"data": SAMPLES[:2]}))
        assert len(samples) == 2

    @pytest.mark.parametrize("data", [{"rows": []}, {"samples": {}}, 42, {"samples": [], "trips": {}}])
    def test_malformed(self, tmp_path, data):
        with pytest.raises(InputError):
            load_track_file(write_json(tmp_path, "t.json", data))

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputError, match="not found"):
            load_track_file(str(tmp_path / "missing.json"))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "t.json"
        path.write_text("{not json")
        with pytest.raises(InputError, match="Invalid JSON"):
            load_track_file(str(path))

    def test_list_file(self, tmp_path):
        assert load_list_file(write_json(tmp_path, "g.json", {"geofences": [1]}), "geofences") == [1]
        assert load_list_file(write_json(tmp_path, "g.json", [2]), "geofences") == [2]
        with pytest.raises(InputError):
            load_list_file(write_json(tmp_path, "g.json", {"other": []}), "geofences")


class TestRun:
    """Tests for run()."""

    def test_trip_markers_and_selection(self, tmp_path):
        track = write_json(tmp_path, "t.json", SAMPLES)
        session = run(parse_args([track, "--select-trip", "2"]))
        try:
            assert len(session.trips) == 2
            assert session.mode.selected_trip_index == 1
            assert session.mode.trip_markers_visible
        finally:
            session.teardown()

    def test_playback_advances(self, tmp_path):
        track = write_json(tmp_path, "t.json", SAMPLES)
        config = write_json(tmp_path, "c.json", {"progressStep": 10})
        session = run(parse_args([track, "--config", config, "--play-seconds", "0.5"]))
        try:
            assert session.progress == 50.0
            assert not session.playing
            assert session.current_index == 2
        finally:
            session.teardown()

    def test_seek_and_marker_mode(self, tmp_path):
        track = write_json(tmp_path, "t.json", SAMPLES)
        session = run(parse_args([track, "--mode", "marker", "--seek", "25"]))
        try:
            assert session.progress == 25.0
            assert session.current_index == 1
            assert session.overlay_count == 5 + 1 + 2 + 1
        finally:
            session.teardown()

    def test_separate_geofence_file(self, tmp_path, circle_geofence):
        track = write_json(tmp_path, "t.json", SAMPLES)
        geofences = write_json(tmp_path, "g.json", [circle_geofence])
        session = run(parse_args([track, "--geofences", geofences, "--show-shapes"]))
        try:
            assert session.geofence_state.show_geofences
            assert session.overlay_count == 3 + 1 + 2
        finally:
            session.teardown()


class TestMain:
    """End-to-end tests for main()."""

    @pytest.fixture
    def torn_down(self, monkeypatch):
        """Sessions torn down during a main() call."""
        sessions = []

        class TrackingSession(ReplaySession):
            def teardown(self):
                sessions.append(self)
                super().teardown()

        monkeypatch.setattr(cli, "ReplaySession", TrackingSession)
        return sessions

    def test_success_writes_snapshot(self, tmp_path):
        track = write_json(tmp_path, "t.json", SAMPLES)
        snapshot = tmp_path / "out.png"
        code = main([track, "--trip-markers", "--snapshot", str(snapshot), "--size", "320", "240"])
        assert code == 0
        assert snapshot.exists()

    def test_missing_track_returns_error(self, tmp_path):
        assert main([str(tmp_path / "missing.json")]) == 1

    def test_invalid_config_returns_error(self, tmp_path):
        track = write_json(tmp_path, "t.json", SAMPLES)
        config = write_json(tmp_path, "c.json", {"tickIntervalMs": -5})
        assert main([track, "--config", config]) == 1

    def test_bad_speed_returns_error(self, tmp_path):
        track = write_json(tmp_path, "t.json", SAMPLES)
        assert main([track, "--speed", "0"]) == 1

    def test_empty_track(self, tmp_path):
        track = write_json(tmp_path, "t.json", [])
        assert main([track]) == 0

    def test_success_tears_down_session(self, tmp_path, torn_down):
        track = write_json(tmp_path, "t.json", SAMPLES)
        assert main([track]) == 0
        assert len(torn_down) == 1

    def test_failure_after_setup_tears_down_session(self, tmp_path, torn_down):
        track = write_json(tmp_path, "t.json", SAMPLES)
        assert main([track, "--speed", "0"]) == 1
        assert len(torn_down) == 1

    def test_unwritable_snapshot_returns_error(self, tmp_path, torn_down):
        track = write_json(tmp_path, "t.json", SAMPLES)
        snapshot = tmp_path / "no-such-dir" / "out.png"
        assert main([track, "--snapshot", str(snapshot)]) == 1
        assert not snapshot.exists()
        assert len(torn_down) == 1
