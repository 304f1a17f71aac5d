"""
Playback clock.

Single-threaded and cooperative: progress only moves when the scheduler
fires a tick callback. Nothing runs between ticks.

The scheduler is abstract so a host UI can plug in its own event loop;
ManualScheduler runs on virtual time and drives the headless CLI and the
tests.
"""

import heapq
import itertools
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from constants import (
    DEFAULT_SPEED,
    END_GRACE_MS,
    PROGRESS_MAX,
    PROGRESS_MIN,
    PROGRESS_STEP,
    SKIP_STEP,
    TICK_INTERVAL_MS,
)
from interpolator import progress_for_index

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[float, bool], None]


@dataclass
class TimerHandle:
    """A pending scheduler callback."""
    due_ms: float
    callback: Callable[[], None] = field(repr=False)
    seq: int = 0
    cancelled: bool = False


class Scheduler(ABC):
    """Timer capability the playback clock needs from its host."""

    @property
    @abstractmethod
    def now_ms(self) -> float:
        ...

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        ...

    @abstractmethod
    def cancel(self, handle: Optional[TimerHandle]) -> None:
        ...


class ManualScheduler(Scheduler):
    """
    Virtual-time scheduler.

    Callbacks fire only from advance()/run_until_idle(), in due-time order
    (ties in scheduling order), one at a time on the caller's thread.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = start_ms
        self._queue: List = []
        self._seq = itertools.count()

    @property
    def now_ms(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        seq = next(self._seq)
        handle = TimerHandle(due_ms=self._now + max(0.0, delay_ms), callback=callback, seq=seq)
        heapq.heappush(self._queue, (handle.due_ms, seq, handle))
        return handle

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        if handle is not None:
            handle.cancelled = True

    def _next_due(self) -> Optional[float]:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0][0] if self._queue else None

    def advance(self, ms: float) -> int:
        """
        Move virtual time forward, firing every callback that becomes due.

        Returns:
            Number of callbacks fired
        """
        target = self._now + ms
        fired = 0
        while True:
            due = self._next_due()
            if due is None or due > target:
                break
            _, _, handle = heapq.heappop(self._queue)
            self._now = due
            handle.callback()
            fired += 1
        self._now = target
        return fired

    def run_until_idle(self, limit_ms: float = 3_600_000.0) -> int:
        """Fire callbacks until the queue is empty or limit_ms of virtual time passes."""
        deadline = self._now + limit_ms
        fired = 0
        while True:
            due = self._next_due()
            if due is None or due > deadline:
                break
            fired += self.advance(due - self._now)
        return fired


def clamp(value: float, lo: float = PROGRESS_MIN, hi: float = PROGRESS_MAX) -> float:
    if value != value:  # NaN
        return lo
    return max(lo, min(hi, value))


class PlaybackClock:
    """
    Advances replay progress (0-100) on a fixed tick.

    Each tick adds speed * progress_step. Reaching 100, by a tick or a seek,
    stops playback and after end_grace_ms resets progress to 0. A seek
    applies immediately.

    Args:
        scheduler: Timer source
        tick_interval_ms: Delay between ticks
        progress_step: Progress added per tick at speed 1.0
        speed: Speed multiplier
        end_grace_ms: Hold time at 100 before resetting to 0
    """

    def __init__(
        self,
        scheduler: Scheduler,
        tick_interval_ms: float = TICK_INTERVAL_MS,
        progress_step: float = PROGRESS_STEP,
        speed: float = DEFAULT_SPEED,
        end_grace_ms: float = END_GRACE_MS,
    ):
        self.scheduler = scheduler
        self.tick_interval_ms = tick_interval_ms
        self.progress_step = progress_step
        self.end_grace_ms = end_grace_ms
        self.track_length = 0
        self._speed = self._validate_speed(speed)
        self._progress = 0.0
        self._playing = False
        self._tick_handle: Optional[TimerHandle] = None
        self._reset_handle: Optional[TimerHandle] = None
        self._observers: List[ProgressObserver] = []

    @staticmethod
    def _validate_speed(speed: float) -> float:
        if speed is None or not math.isfinite(speed) or speed <= 0:
            raise ValueError(f"Playback speed must be a positive number, got {speed!r}")
        return float(speed)

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def playing(self) -> bool:
        return self._playing

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def reset_pending(self) -> bool:
        return self._reset_handle is not None

    def subscribe(self, observer: ProgressObserver) -> Callable[[], None]:
        """Register a (progress, playing) observer; returns an unsubscribe callable."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self) -> None:
        for observer in list(self._observers):
            observer(self._progress, self._playing)

    # -- timers ---------------------------------------------------------------

    def _schedule_tick(self) -> None:
        if self._tick_handle is None:
            self._tick_handle = self.scheduler.call_later(self.tick_interval_ms, self._on_tick)

    def _cancel_tick(self) -> None:
        self.scheduler.cancel(self._tick_handle)
        self._tick_handle = None

    def _cancel_reset(self) -> None:
        self.scheduler.cancel(self._reset_handle)
        self._reset_handle = None

    def _on_tick(self) -> None:
        self._tick_handle = None
        if not self._playing:
            return
        self._progress = min(PROGRESS_MAX, self._progress + self._speed * self.progress_step)
        if self._progress >= PROGRESS_MAX:
            self._end_reached()
        else:
            self._schedule_tick()
        self._notify()

    def _end_reached(self) -> None:
        """Stop at 100 and arm the delayed rewind unless one is already pending."""
        self._playing = False
        self._cancel_tick()
        if self._reset_handle is None:
            self._reset_handle = self.scheduler.call_later(self.end_grace_ms, self._on_reset)
            logger.debug("Playback reached the end, resetting in %.0f ms", self.end_grace_ms)

    def _on_reset(self) -> None:
        self._reset_handle = None
        self._progress = PROGRESS_MIN
        self._notify()

    # -- controls -------------------------------------------------------------

    def play(self) -> None:
        if self._playing:
            return
        if self._progress >= PROGRESS_MAX:
            self._cancel_reset()
            self._progress = PROGRESS_MIN
        self._playing = True
        self._schedule_tick()
        self._notify()

    def pause(self) -> None:
        if not self._playing:
            return
        self._playing = False
        self._cancel_tick()
        self._notify()

    def toggle(self) -> bool:
        if self._playing:
            self.pause()
        else:
            self.play()
        return self._playing

    def stop(self) -> None:
        """Pause and rewind to the start."""
        self._playing = False
        self._cancel_tick()
        self._cancel_reset()
        self._progress = PROGRESS_MIN
        self._notify()

    def restart(self) -> None:
        """Rewind to the start without changing the play state."""
        self._cancel_reset()
        self._progress = PROGRESS_MIN
        if self._playing:
            self._schedule_tick()
        self._notify()

    def seek(self, progress: float) -> float:
        """Jump to a progress value; preempts the next tick."""
        self._progress = clamp(progress)
        if self._progress >= PROGRESS_MAX:
            self._end_reached()
        else:
            self._cancel_reset()
        self._notify()
        return self._progress

    def seek_to_index(self, index: int) -> Optional[float]:
        """Jump to the progress of a sample index (ignored for tracks shorter than 2)."""
        progress = progress_for_index(self.track_length, index)
        if progress is None:
            return None
        return self.seek(progress)

    def skip_forward(self, step: float = SKIP_STEP) -> float:
        return self.seek(self._progress + step)

    def skip_backward(self, step: float = SKIP_STEP) -> float:
        return self.seek(self._progress - step)

    def set_speed(self, speed: float) -> None:
        """
        Raises:
            ValueError: If speed is not a positive finite number
        """
        self._speed = self._validate_speed(speed)
        logger.debug("Playback speed set to %sx", self._speed)

    def teardown(self) -> None:
        """Cancel every pending timer and drop all observers."""
        self._playing = False
        self._cancel_tick()
        self._cancel_reset()
        self._observers.clear()
