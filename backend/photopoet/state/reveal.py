"""
Typewriter reveal of generated text.

Purely cosmetic: the displayed text grows by one character per tick until
it matches the full artifact. Assigning a new artifact restarts the reveal
from an empty string. Ticks are derived from elapsed time, so nothing here
depends on timers or on the generation call that produced the text.
"""

import time
from typing import Callable, Optional


class TextReveal:
    """Tick-driven reveal state for a single text artifact."""

    def __init__(self, interval_ms: int = 25, clock: Callable[[], float] = time.monotonic):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.interval = interval_ms / 1000.0
        self._clock = clock
        self.text = ""
        self._ticks = 0
        self._started_at: Optional[float] = None

    def restart(self, text: str) -> None:
        """Start revealing ``text`` from the beginning."""
        self.text = text or ""
        self._ticks = 0
        self._started_at = self._clock()

    def show_all(self, text: str) -> None:
        """Replace the text and display it in full immediately (manual edits)."""
        self.text = text or ""
        self._ticks = len(self.text)
        self._started_at = None

    def advance(self, ticks: int = 1) -> str:
        self._ticks = min(len(self.text), self._ticks + max(0, ticks))
        return self.displayed

    def sync(self) -> str:
        """Advance to the tick count implied by the time elapsed since restart."""
        if self._started_at is not None:
            elapsed = self._clock() - self._started_at
            self._ticks = min(len(self.text), max(self._ticks, int(elapsed / self.interval)))
        return self.displayed

    @property
    def displayed(self) -> str:
        return self.text[: self._ticks]
