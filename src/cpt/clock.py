"""
PresentationClock: fixed-interval round ticks and stimulus-onset capture.

Ticks are nominal (start + k * interval) so frame jitter never accumulates
into drift. The onset is the reaction-time origin of the current round; it is
set from a post-flip callback, i.e. once the stimulus is actually on screen.
"""
from __future__ import annotations


class PresentationClock:
    def __init__(self, interval_ms: int) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        self.interval_s = interval_ms / 1000.0
        self._next_tick: float | None = None
        self._onset: float | None = None

    @property
    def running(self) -> bool:
        return self._next_tick is not None

    @property
    def next_tick(self) -> float | None:
        return self._next_tick

    @property
    def onset(self) -> float | None:
        return self._onset

    def start(self, now: float) -> None:
        self._next_tick = now + self.interval_s
        self._onset = None

    def stop(self) -> None:
        """Idempotent; a stopped clock never reports due ticks."""
        self._next_tick = None

    def pop_tick(self, now: float) -> float | None:
        """Consume and return the earliest tick time due at `now`, if any."""
        if self._next_tick is None or self._next_tick > now:
            return None
        tick = self._next_tick
        self._next_tick = tick + self.interval_s
        return tick

    def mark_onset(self, t: float) -> None:
        self._onset = t

    def clear_onset(self) -> None:
        self._onset = None
