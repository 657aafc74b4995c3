"""
Maps per-phase progress (bytes, frames) onto one job-wide 0..100 value.

Each phase owns a fixed, non-overlapping band of the range, so a later phase
can never report less than an earlier one. The tracker additionally clamps to
the highest value seen and only writes through when the value moved by at
least ``min_step`` or a phase finished.
"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

PHASES = ("download", "transform", "upload")
LOG_EVERY = 5.0


def local_percentage(complete, total) -> float:
    """100 * complete / total rounded to 2 places; an empty phase counts as done."""
    if not total:
        return 100.0
    pct = round(100.0 * float(complete) / float(total), 2)
    return max(0.0, min(100.0, pct))


class ProgressTracker:
    def __init__(self, write: Callable[[float], None], bands=(33.0, 33.0, 34.0), *,
                 min_step: float = 1.0, job_id: str = "", initial: float = 0.0):
        if len(bands) != len(PHASES):
            raise ValueError(f"expected {len(PHASES)} progress bands, got {len(bands)}")
        self._write = write
        self._min_step = min_step
        self._job_id = job_id
        self._lock = threading.Lock()
        self._bands = {}
        start = 0.0
        for phase, width in zip(PHASES, bands):
            self._bands[phase] = (start, float(width))
            start += float(width)
        self.value = float(initial)
        self._written = float(initial)
        self._logged = float(initial)

    def band(self, phase: str) -> tuple[float, float]:
        """(start, end) of a phase's slice of the global range."""
        start, width = self._bands[phase]
        return start, start + width

    def global_value(self, phase: str, complete, total) -> float:
        start, width = self._bands[phase]
        return round(start + local_percentage(complete, total) / 100.0 * width, 2)

    def update(self, phase: str, complete, total) -> float:
        raw = self.global_value(phase, complete, total)
        with self._lock:
            if raw <= self.value:
                return self.value
            self.value = raw
            phase_done = raw >= self.band(phase)[1]
            write = phase_done or raw - self._written >= self._min_step
            if write:
                self._written = raw
            if raw - self._logged >= LOG_EVERY:
                self._logged = raw
                logger.debug("job %s progress %.2f%% (%s)", self._job_id, raw, phase)
        # The write may be a network call; stores drop values lower than what they hold
        if write:
            self._write(raw)
        return raw

    def reporter(self, phase: str) -> Callable:
        """A ``report(complete, total)`` callable bound to one phase."""
        if phase not in self._bands:
            raise KeyError(phase)

        def report(complete, total):
            return self.update(phase, complete, total)

        return report

    def finish(self, phase: str) -> float:
        return self.update(phase, 1, 1)
