"""Day-by-day playback of a practice session.

The controller owns at most one outstanding scheduled task. Each tick
advances the session by one bar through a callback, then schedules the next
tick using the playback speed current at that moment, so speed changes take
effect on the following tick without disturbing a wait already in flight.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

from src.simulator.errors import InvalidOperationError

logger = logging.getLogger(__name__)


class ScheduledTask(Protocol):
    """Handle to a pending callback."""

    def cancel(self) -> None:
        """Prevent the callback from running if it has not started."""
        ...


class Scheduler(Protocol):
    """Source of delayed callbacks."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run ``callback`` once after ``delay`` seconds."""
        ...


class ThreadingScheduler:
    """Scheduler backed by daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Start a daemon timer for the callback."""
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class PlaybackHooks(Protocol):
    """Session operations the controller drives."""

    def is_playing(self) -> bool:
        """Check if the session is in the playing state."""
        ...

    def at_terminal_bar(self) -> bool:
        """Check if the current bar is the last of the practice period."""
        ...

    def advance(self) -> None:
        """Move the session forward by one bar."""
        ...

    def complete(self) -> None:
        """Finish the session."""
        ...

    def playback_speed(self) -> float:
        """Seconds per bar."""
        ...


class PlaybackController:
    """Drives a session forward one bar per tick.

    Attributes:
        hooks: Session operations used by each tick
        scheduler: Source of delayed callbacks
    """

    def __init__(
        self,
        hooks: PlaybackHooks,
        scheduler: Scheduler | None = None,
        lock: threading.RLock | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            hooks: Session operations used by each tick
            scheduler: Source of delayed callbacks (threading timers if None)
            lock: Lock serialising ticks with other session operations
        """
        self.hooks = hooks
        self.scheduler = scheduler or ThreadingScheduler()
        self._lock = lock or threading.RLock()
        self._task: ScheduledTask | None = None
        self._running = False
        # Bumped on every stop so a tick already past cancel() becomes a no-op
        self._generation = 0

    @property
    def is_running(self) -> bool:
        """Check if ticks are scheduled."""
        return self._running

    def start(self) -> None:
        """Begin scheduling ticks; calling it while running does nothing."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._schedule_next()
            logger.debug("Playback started")

    def stop(self) -> None:
        """Cancel the outstanding tick, if any."""
        with self._lock:
            self._generation += 1
            if self._task is not None:
                self._task.cancel()
                self._task = None
            if self._running:
                logger.debug("Playback stopped")
            self._running = False

    def tick(self) -> None:
        """Advance one bar, completing the session at the terminal bar."""
        with self._lock:
            self._task = None
            if not self._running:
                return
            if not self.hooks.is_playing():
                self._running = False
                return

            if self.hooks.at_terminal_bar():
                self.stop()
                self.hooks.complete()
                return

            self.hooks.advance()
            if self._running and self.hooks.is_playing():
                self._schedule_next()
            else:
                self._running = False

    def step(self) -> None:
        """Advance a single bar manually.

        Raises:
            InvalidOperationError: If playback is running
        """
        with self._lock:
            if self._running or self.hooks.is_playing():
                raise InvalidOperationError("Manual step is only allowed while paused")
            self.hooks.advance()

    def _schedule_next(self) -> None:
        generation = self._generation
        delay = self.hooks.playback_speed()

        def run() -> None:
            with self._lock:
                if generation != self._generation:
                    return
                self.tick()

        self._task = self.scheduler.call_later(delay, run)
