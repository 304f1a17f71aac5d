"""
Tests for ReplayConfig validation.

Tests defaults, camelCase and snake_case store keys, range validation and
loading from a JSON file.
"""

import json

import pytest
from pydantic import ValidationError

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import ReplayConfig
from constants import DEFAULT_CENTER, END_GRACE_MS, PROGRESS_STEP, TICK_INTERVAL_MS


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        config = ReplayConfig()
        assert config.tick_interval_ms == TICK_INTERVAL_MS
        assert config.progress_step == PROGRESS_STEP
        assert config.end_grace_ms == END_GRACE_MS
        assert config.speed_multiplier == 1.0
        assert config.trip_gap_minutes == 30
        assert config.min_trip_distance_km == 0.01
        assert config.default_center == DEFAULT_CENTER
        assert config.initial_zoom is None

    def test_empty_store(self):
        assert ReplayConfig.from_store(None) == ReplayConfig()
        assert ReplayConfig.from_store({}) == ReplayConfig()

    def test_frozen(self):
        config = ReplayConfig()
        with pytest.raises(ValidationError):
            config.tick_interval_ms = 5


class TestFromStore:
    """Tests for reading the host key/value store."""

    def test_camel_case_keys(self):
        config = ReplayConfig.from_store({
            "tickIntervalMs": 50,
            "speedMultiplier": 2,
            "tripGapMinutes": 45,
            "initialZoom": 12,
        })
        assert config.tick_interval_ms == 50
        assert config.speed_multiplier == 2.0
        assert config.trip_gap_minutes == 45
        assert config.initial_zoom == 12

    def test_snake_case_keys(self):
        config = ReplayConfig.from_store({"end_grace_ms": 0, "fit_padding_px": 40})
        assert config.end_grace_ms == 0
        assert config.fit_padding_px == 40

    def test_unknown_keys_ignored(self):
        """The store is shared with the host, so unrelated keys are expected."""
        config = ReplayConfig.from_store({"theme": "dark", "userId": 42})
        assert config == ReplayConfig()

    def test_center_from_list(self):
        config = ReplayConfig.from_store({"defaultCenter": [31.5, 74.3]})
        assert config.default_center == (31.5, 74.3)

    @pytest.mark.parametrize("store", [
        {"tickIntervalMs": 0},
        {"progressStep": -1},
        {"speedMultiplier": 0},
        {"endGraceMs": -5},
        {"defaultZoom": 25},
        {"initialZoom": 1},
        {"tickIntervalMs": "fast"},
    ])
    def test_invalid_values_raise(self, store):
        with pytest.raises(ValidationError):
            ReplayConfig.from_store(store)


class TestFromJsonFile:
    """Tests for ReplayConfig.from_json_file."""

    def test_load(self, tmp_path):
        path = tmp_path / "replay.json"
        path.write_text(json.dumps({"tickIntervalMs": 25, "progressStep": 0.1}))
        config = ReplayConfig.from_json_file(str(path))
        assert config.tick_interval_ms == 25
        assert config.progress_step == 0.1

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "replay.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ValueError, match="JSON object"):
            ReplayConfig.from_json_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ReplayConfig.from_json_file(str(tmp_path / "nope.json"))
