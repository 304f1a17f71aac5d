"""
Rich console configuration for the replay engine CLI.

Provides terminal output with progress bars, panels, and styled logging.
"""

import logging
from typing import Dict, Mapping, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme
from rich.panel import Panel
from rich.table import Table
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
    TimeElapsedColumn,
)

REPLAY_THEME = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "highlight": "bold magenta",
    "muted": "dim",
    "track": "bold blue",
    "trip": "bold cyan",
    "gps": "green",
})

# Global console instance
console = Console(theme=REPLAY_THEME)


def setup_rich_logging(verbose: bool = False) -> None:
    """
    Configure logging to use Rich handler.

    Args:
        verbose: Enable DEBUG level logging with full details
    """
    level = logging.DEBUG if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                show_time=verbose,
                show_path=verbose,
                rich_tracebacks=True,
                tracebacks_show_locals=verbose,
                markup=False,
            )
        ],
        force=True,  # Override any existing configuration
    )


def create_playback_progress() -> Progress:
    """
    Create a progress bar that follows replay progress (0-100).

    The status field carries the current sample index and play state.

    Returns:
        Configured Progress instance
    """
    return Progress(
        SpinnerColumn("dots"),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=40, style="cyan", complete_style="green"),
        TaskProgressColumn(),
        TextColumn("[dim]{task.fields[status]}[/]"),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    )


def print_banner(version: str = "1.0.0") -> None:
    console.print("\n[bold cyan]Replay[/] [dim]track animation & map overlay engine[/]")
    console.print(f"[muted]Version {version}[/]\n")


def print_phase(phase_num: int, total_phases: int, description: str) -> None:
    """
    Print a phase header for multi-step processing.

    Args:
        phase_num: Current phase number (1-indexed)
        total_phases: Total number of phases
        description: Description of this phase
    """
    console.print(
        f"\n[bold cyan]Step {phase_num}/{total_phases}:[/] [bold]{description}[/]"
    )


def print_session_summary(
    track_file: str,
    sample_count: int,
    valid_count: int,
    trip_count: int,
    display_mode: str,
    speed: float,
    trip_markers: bool = False,
    selected_trip: Optional[int] = None,
    geofence_count: int = 0,
) -> None:
    """
    Print the session configuration before playback.

    Args:
        track_file: Source of the track samples
        sample_count: Samples in the track
        valid_count: Samples with a drawable position
        trip_count: Trips after segmentation
        display_mode: "line" or "marker"
        speed: Playback speed multiplier
        trip_markers: Whether per-trip markers are shown
        selected_trip: Selected trip index, if any
        geofence_count: Geofence records supplied
    """
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value", style="bold")

    table.add_row("Track", f"[green]{escape(track_file)}[/]")
    table.add_row("Samples", f"[highlight]{sample_count:,}[/] ({valid_count:,} with position)")
    table.add_row("Trips", f"[trip]{trip_count}[/]")
    table.add_row("Display Mode", display_mode)
    table.add_row("Speed", f"{speed:g}x")
    if trip_markers:
        selected = "none" if selected_trip is None else f"#{selected_trip + 1}"
        table.add_row("Trip Markers", f"on (selected: {selected})")
    else:
        table.add_row("Trip Markers", "[dim]off[/]")
    if geofence_count:
        table.add_row("Geofences", str(geofence_count))

    panel = Panel(
        table,
        title="[bold]Replay Session[/]",
        border_style="cyan",
        padding=(1, 2),
    )
    console.print(panel)
    console.print()


def print_completion_summary(
    progress: float,
    current_index: Optional[int],
    overlays_by_kind: Mapping[str, int],
    viewport: Dict[str, object],
    snapshot: Optional[str] = None,
) -> None:
    """
    Print a styled summary of the session state after playback.

    Args:
        progress: Final progress (0-100)
        current_index: Published sample index
        overlays_by_kind: Materialized overlay counts keyed by kind name
        viewport: Camera state fields
        snapshot: Path of the written PNG snapshot (optional)
    """
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold green")

    table.add_row("Progress", f"{progress:.2f}%")
    table.add_row("Sample Index", "-" if current_index is None else str(current_index))
    total = sum(overlays_by_kind.values())
    if overlays_by_kind:
        breakdown = ", ".join(f"{kind}: {count}" for kind, count in sorted(overlays_by_kind.items()))
        table.add_row("Overlays", f"{total} ({breakdown})")
    else:
        table.add_row("Overlays", "0")
    table.add_row(
        "Viewport",
        f"{viewport['center_lat']:.5f}, {viewport['center_lng']:.5f} @ z{viewport['zoom']:g}"
        + (" (user)" if viewport.get("user_overridden") else ""),
    )
    if snapshot:
        table.add_row("Snapshot", escape(snapshot))

    panel = Panel(
        table,
        title="[bold green]Complete[/]",
        border_style="green",
        padding=(1, 2),
    )
    console.print()
    console.print(panel)


def print_error(message: str, hint: Optional[str] = None) -> None:
    """
    Print a styled error message.

    Args:
        message: Error message
        hint: Optional hint for resolution
    """
    console.print(f"\n[error]Error:[/] {escape(message)}")
    if hint:
        console.print(f"[muted]Hint: {escape(hint)}[/]")
