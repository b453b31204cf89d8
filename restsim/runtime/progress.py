"""Lightweight terminal progress reporting for batch runs."""

from __future__ import annotations

import math
import sys
import time

ETA_EWMA_ALPHA = 0.1
ETA_MIN_SAMPLES = 3


class ProgressReporter:
    """Lightweight terminal progress bar with ETA feedback."""

    def __init__(
        self,
        total_events: int,
        *,
        enabled: bool = False,
    ) -> None:
        self.enabled = bool(enabled and total_events > 0)
        self.total_events = max(int(total_events), 1)
        self.start = time.monotonic()
        self._finished = False
        self._isatty = sys.stdout.isatty()
        self._last_percent_int: int = -1
        self._eta_ewma_s: float | None = None
        self._eta_samples: int = 0
        self._last_wall: float | None = None
        self._last_count: int | None = None

    def update(self, processed: int, entries: int, *, force: bool = False) -> None:
        """Render the bar when the percent changes by 0.1% or when forced."""

        if not self.enabled or self._finished:
            return
        now = time.monotonic()
        self._update_eta(processed, now)
        is_last = processed >= self.total_events
        frac = min(max(processed / self.total_events, 0.0), 1.0)
        percent_tenth = int(frac * 1000)
        if not force and not is_last and percent_tenth == self._last_percent_int:
            return
        self._last_percent_int = percent_tenth
        bar_width = 28
        filled = int(bar_width * frac)
        bar = "#" * filled + "-" * (bar_width - filled)
        eta_seconds = float("nan")
        if self._eta_ewma_s is not None and self._eta_samples >= ETA_MIN_SAMPLES:
            eta_seconds = self._eta_ewma_s * max(self.total_events - processed, 0)
        line = (
            f"[{bar}] {frac * 100:5.1f}% event {processed}/{self.total_events} "
            f"entries={entries} {_format_eta(eta_seconds)}"
        )
        if self._isatty:
            sys.stdout.write(f"\r\033[2K{line}")
            if is_last or force:
                sys.stdout.write("\n")
        else:
            sys.stdout.write(f"{line}\n")
        if is_last or force:
            self._finished = True
        sys.stdout.flush()

    def finish(self, processed: int, entries: int) -> None:
        """Force a final render to end the line cleanly."""

        if not self.enabled:
            return
        self.update(processed, entries, force=True)

    def _update_eta(self, processed: int, now: float) -> None:
        if self._last_wall is not None and self._last_count is not None:
            delta = processed - self._last_count
            if delta > 0:
                per_event = (now - self._last_wall) / delta
                if math.isfinite(per_event) and per_event > 0.0:
                    if self._eta_ewma_s is None:
                        self._eta_ewma_s = per_event
                    else:
                        self._eta_ewma_s = ETA_EWMA_ALPHA * per_event + (1.0 - ETA_EWMA_ALPHA) * self._eta_ewma_s
                    self._eta_samples += 1
        self._last_wall = now
        self._last_count = processed


def _format_eta(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0.0:
        return "ETA ?"
    if seconds >= 3600.0:
        return f"ETA {seconds/3600.0:.1f}h"
    if seconds >= 60.0:
        return f"ETA {seconds/60.0:.1f}m"
    return f"ETA {seconds:.0f}s"
