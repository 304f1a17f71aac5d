"""
Replay configuration.

Read from the host application's key/value store (camelCase or snake_case
keys) or from a JSON file. Invalid values raise pydantic.ValidationError.
"""

import json
import logging
from typing import Any, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from constants import (
    DEFAULT_CENTER,
    DEFAULT_SPEED,
    DEFAULT_ZOOM,
    END_GRACE_MS,
    FIT_PADDING_PX,
    MAX_ZOOM,
    MIN_TRIP_DISTANCE_KM,
    MIN_ZOOM,
    PROGRESS_STEP,
    TICK_INTERVAL_MS,
    TRIP_GAP_MINUTES,
)

logger = logging.getLogger(__name__)


class ReplayConfig(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    tick_interval_ms: float = Field(default=TICK_INTERVAL_MS, gt=0)
    progress_step: float = Field(default=PROGRESS_STEP, gt=0)
    speed_multiplier: float = Field(default=DEFAULT_SPEED, gt=0)
    end_grace_ms: float = Field(default=END_GRACE_MS, ge=0)
    trip_gap_minutes: float = Field(default=TRIP_GAP_MINUTES, gt=0)
    min_trip_distance_km: float = Field(default=MIN_TRIP_DISTANCE_KM, ge=0)
    default_center: Tuple[float, float] = DEFAULT_CENTER
    default_zoom: float = Field(default=DEFAULT_ZOOM, ge=MIN_ZOOM, le=MAX_ZOOM)
    fit_padding_px: int = Field(default=FIT_PADDING_PX, ge=0)
    initial_zoom: Optional[float] = Field(default=None, ge=MIN_ZOOM, le=MAX_ZOOM)

    @classmethod
    def from_store(cls, store: Optional[Mapping[str, Any]]) -> "ReplayConfig":
        """Build a config from a key/value store, ignoring unrelated keys."""
        return cls.model_validate(dict(store or {}))

    @classmethod
    def from_json_file(cls, path: str) -> "ReplayConfig":
        """Load a config from a JSON object on disk."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        logger.debug("Loaded replay config from %s", path)
        return cls.from_store(data)
