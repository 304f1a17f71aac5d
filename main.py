#!/usr/bin/env python3
"""
Headless replay driver.

Loads a track (and optional trips and geofences) from JSON, runs a replay
session on a raster canvas with virtual time, and prints what ended up on
the map. Optionally writes a PNG snapshot.

Usage:
    python main.py track.json --mode line --trip-markers --play-seconds 5
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError

from config import ReplayConfig
from constants import DEFAULT_CANVAS_SIZE, SPEED_OPTIONS
from playback import ManualScheduler
from raster_canvas import PillowCanvas
from replay_engine import ReplaySession
from rich_console import (
    create_playback_progress,
    print_banner,
    print_completion_summary,
    print_error,
    print_phase,
    print_session_summary,
    setup_rich_logging,
)

logger = logging.getLogger(__name__)

__version__ = "1.0.0"


class InputError(Exception):
    """A CLI input file is missing or malformed."""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a GPS track and render its map overlays.")
    parser.add_argument("track", help="JSON file with a list of samples, or an object with "
                                      "'samples'/'data', 'trips' and 'geofences'")
    parser.add_argument("--trips", help="JSON file with an external trip list "
                                        "(trips are inferred from time gaps when absent)")
    parser.add_argument("--geofences", help="JSON file with geofence records")
    parser.add_argument("--show-shapes", action="store_true",
                        help="Draw geofence circles/polygons as well as their markers")
    parser.add_argument("--mode", choices=["line", "marker"], default="line",
                        help="Display mode (default: line)")
    parser.add_argument("--trip-markers", action="store_true", help="Show per-trip markers")
    parser.add_argument("--select-trip", type=int, metavar="N",
                        help="Select trip N (1-based, as labelled on the map)")
    parser.add_argument("--speed", type=float, default=None,
                        help=f"Playback speed multiplier (e.g. {', '.join(f'{s:g}' for s in SPEED_OPTIONS)})")
    parser.add_argument("--seek", type=float, metavar="P", help="Seek to progress P (0-100) before playing")
    parser.add_argument("--play-seconds", type=float, default=0.0, metavar="S",
                        help="Play for S seconds of virtual time (default: 0, no playback)")
    parser.add_argument("--snapshot", metavar="PNG", help="Write a PNG snapshot of the final map")
    parser.add_argument("--size", type=int, nargs=2, metavar=("W", "H"), default=list(DEFAULT_CANVAS_SIZE),
                        help="Snapshot size in pixels")
    parser.add_argument("--config", metavar="JSON", help="Replay configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def load_json(path: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        raise InputError(f"File not found: {path}")
    except json.JSONDecodeError as e:
        raise InputError(f"Invalid JSON in {path}: {e}")


def load_track_file(path: str) -> Tuple[List[Any], Optional[List[Any]], List[Any]]:
    """
    Read samples, trips and geofences from a track file.

    Returns:
        (samples, trips or None, geofences)

    Raises:
        InputError: If the file is unreadable or has no sample list
    """
    data = load_json(path)
    if isinstance(data, list):
        return data, None, []
    if not isinstance(data, dict):
        raise InputError(f"{path} must contain a JSON list or object")

    samples = data.get("samples", data.get("data"))
    if not isinstance(samples, list):
        raise InputError(f"{path} has no 'samples' or 'data' list")
    trips = data.get("trips")
    if trips is not None and not isinstance(trips, list):
        raise InputError(f"'trips' in {path} must be a list")
    geofences = data.get("geofences") or []
    return samples, trips, geofences


def load_list_file(path: str, key: str) -> List[Any]:
    """Read a JSON list, or the list under `key` of a JSON object."""
    data = load_json(path)
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        raise InputError(f"{path} must contain a list of {key}")
    return data


def run(args: argparse.Namespace) -> ReplaySession:
    """Build and drive a session from parsed arguments."""
    config = ReplayConfig.from_json_file(args.config) if args.config else ReplayConfig()

    samples, trips, geofences = load_track_file(args.track)
    if args.trips:
        trips = load_list_file(args.trips, "trips")
    if args.geofences:
        geofences = load_list_file(args.geofences, "geofences")

    canvas = PillowCanvas(args.size[0], args.size[1])
    session = ReplaySession(canvas, config=config, scheduler=ManualScheduler())
    try:
        _drive(session, canvas, args, samples, trips, geofences)
    except Exception:
        session.teardown()
        raise
    return session


def _drive(session: ReplaySession, canvas: PillowCanvas, args: argparse.Namespace,
           samples: List[Any], trips: Optional[List[Any]], geofences: List[Any]) -> None:
    print_phase(1, 3, "Loading track")
    session.load_track(samples, trips=trips)
    session.set_geofence_state(geofences, show_geofences=bool(geofences), show_shapes=args.show_shapes)
    session.set_display_mode(args.mode)
    if args.trip_markers:
        session.set_trip_markers_visible(True)
    if args.select_trip is not None and not session.select_trip(args.select_trip - 1):
        logger.warning("Trip %d is not available (%d trips)", args.select_trip, len(session.trips))
    if args.speed is not None:
        session.set_speed(args.speed)

    mode = session.mode
    print_session_summary(
        track_file=args.track,
        sample_count=len(session.track),
        valid_count=len(session.track.valid_indices),
        trip_count=len(session.trips),
        display_mode=mode.display_mode.value,
        speed=session.clock.speed,
        trip_markers=mode.trip_markers_visible,
        selected_trip=mode.selected_trip_index,
        geofence_count=len(geofences),
    )

    print_phase(2, 3, "Replaying")
    if args.seek is not None:
        session.seek(args.seek)
    if args.play_seconds > 0:
        _play(session, args.play_seconds)

    print_phase(3, 3, "Rendering")
    if args.snapshot:
        canvas.save(args.snapshot)


def _play(session: ReplaySession, seconds: float) -> None:
    scheduler = session.scheduler
    tick_ms = session.config.tick_interval_ms
    remaining_ms = seconds * 1000.0

    session.play()
    with create_playback_progress() as progress:
        task = progress.add_task("Playback", total=100, completed=session.progress, status="")
        while remaining_ms > 0:
            step = min(tick_ms, remaining_ms)
            scheduler.advance(step)
            remaining_ms -= step
            progress.update(
                task,
                completed=session.progress,
                status=f"sample {session.current_index} {'▶' if session.playing else '⏸'}",
            )
    session.pause()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_rich_logging(args.verbose)
    print_banner(__version__)

    try:
        session = run(args)
    except InputError as e:
        print_error(str(e), hint="The track file should hold a list of GPS samples")
        return 1
    except ValidationError as e:
        print_error(f"Invalid replay configuration: {e}")
        return 1
    except ValueError as e:
        print_error(str(e))
        return 1
    except OSError as e:
        print_error(f"Could not write snapshot: {e}", hint="Check that the output directory exists")
        return 1

    try:
        counts = {kind.value: n for kind, n in session.layers.counts_by_kind().items()}
        print_completion_summary(
            progress=session.progress,
            current_index=session.current_index,
            overlays_by_kind=counts,
            viewport=asdict(session.viewport_state),
            snapshot=args.snapshot,
        )
    finally:
        session.teardown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
