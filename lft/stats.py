"""
Transfer statistics: counters, smoothed speed and ETA.

Both sides of a transfer feed cumulative byte counts into a
StatsEstimator; it throttles updates, keeps a recency-weighted window of
speed samples, and hands out copies of TransferStats to observers::

    est = StatsEstimator(on_update=print)
    est.reset(Status.TRANSFERRING)
    est.set_totals(total_files=3, total_bytes=3 << 20)
    t0 = est.now()
    est.update("a.bin", 1 << 20, 512 << 10, t0)
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional

MIB: int = 1024 * 1024
MIN_SPEED_ELAPSED: float = 0.1      # below this, speed is not sampled
UNKNOWN_PROGRESS: float = 0.1       # shown while total bytes are unknown
COMPUTING: str = "computing..."


class Status(str, Enum):
    READY = "ready"
    SCANNING = "scanning"
    WAITING = "waiting"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class TransferStats:
    total_files: int = 0
    completed_files: int = 0
    total_bytes: int = 0
    transferred_bytes: int = 0
    current_speed: float = 0.0      # MiB/s
    estimated_time: str = ""
    current_file: str = ""
    progress: float = 0.0           # 0-100
    status: Status = Status.READY

    def copy(self) -> TransferStats:
        return replace(self)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass(slots=True)
class PerformanceStats:
    update_interval: float
    speed_samples: deque[float]
    last_update: Optional[float] = None
    last_interval: float = 0.0
    last_bytes: int = 0

    @classmethod
    def create(cls, update_interval: float, max_samples: int) -> PerformanceStats:
        return cls(update_interval=update_interval,
                   speed_samples=deque(maxlen=max_samples))


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def compute_progress(transferred: int, total: int) -> float:
    """Percentage of *total* covered by *transferred*, clamped to [0, 100]."""
    if total <= 0:
        return UNKNOWN_PROGRESS
    pct = transferred / total * 100
    return min(100.0, max(0.0, pct))


def weighted_average(samples: Iterable[float]) -> float:
    """Linearly recency-weighted mean: the i-th oldest sample weighs i+1."""
    total = 0.0
    weights = 0.0
    for i, s in enumerate(samples):
        w = float(i + 1)
        total += s * w
        weights += w
    return total / weights if weights else 0.0


def format_eta(seconds: float) -> str:
    if seconds < 1:
        return "<1s"
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        return f"{seconds / 60:.1f} minutes"
    return f"{seconds / 3600:.1f} hours"


def estimate_remaining(remaining_bytes: int, speed_mib: float, total_bytes: int) -> str:
    if speed_mib <= 0 or total_bytes <= 0:
        return COMPUTING
    return format_eta(max(remaining_bytes, 0) / (speed_mib * MIB))


def format_size(n: int) -> str:
    if n == 0:
        return "0 B"
    if n < 1024:
        return f"{n} B"
    value = float(n)
    for unit in "KMGTPE":
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}B"


# ---------------------------------------------------------------------------
# Estimator
# ---------------------------------------------------------------------------

class StatsEstimator:
    """
    Owner of one session's TransferStats.

    All mutation happens under a single lock; observers only ever see
    copies, delivered through *on_update* after the lock is released.
    """

    def __init__(
        self,
        update_interval: float = 0.2,
        max_samples: int = 10,
        on_update: Callable[[TransferStats], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._on_update = on_update or (lambda _stats: None)
        self._update_interval = update_interval
        self._max_samples = max_samples
        self._stats = TransferStats()
        self._perf = PerformanceStats.create(update_interval, max_samples)

    def now(self) -> float:
        return self._clock()

    def snapshot(self) -> TransferStats:
        with self._lock:
            return self._stats.copy()

    @property
    def speed_samples(self) -> list[float]:
        with self._lock:
            return list(self._perf.speed_samples)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self, status: Status = Status.READY) -> None:
        with self._lock:
            self._stats = TransferStats(status=status)
            self._perf = PerformanceStats.create(self._update_interval, self._max_samples)
            snap = self._stats.copy()
        self._on_update(snap)

    def set_status(self, status: Status) -> None:
        with self._lock:
            self._stats.status = status
            snap = self._stats.copy()
        self._on_update(snap)

    def set_totals(
        self,
        total_files: int,
        total_bytes: int,
        status: Status | None = None,
        progress: float | None = None,
    ) -> None:
        with self._lock:
            self._stats.total_files = total_files
            self._stats.total_bytes = total_bytes
            if status is not None:
                self._stats.status = status
            if progress is not None:
                self._stats.progress = progress
            snap = self._stats.copy()
        self._on_update(snap)

    def file_completed(self, transferred_bytes: int, grow_totals: bool = False) -> None:
        """Count one finished file. With *grow_totals*, totals never trail what was seen."""
        with self._lock:
            s = self._stats
            s.completed_files += 1
            s.transferred_bytes = transferred_bytes
            if grow_totals:
                s.total_files = max(s.total_files, s.completed_files)
                s.total_bytes = max(s.total_bytes, transferred_bytes)
            s.progress = compute_progress(transferred_bytes, s.total_bytes)
            snap = s.copy()
        self._on_update(snap)

    def complete(self, files: int | None = None, total_bytes: int | None = None) -> None:
        """
        Mark the session completed and force progress to exactly 100%.

        Without arguments the advertised totals are taken as done (sender);
        with them, totals are replaced by what was observed (receiver).
        """
        with self._lock:
            s = self._stats
            if files is not None:
                s.total_files = files
            if total_bytes is not None:
                s.total_bytes = total_bytes
            s.completed_files = s.total_files
            s.transferred_bytes = s.total_bytes
            s.progress = 100.0
            s.estimated_time = ""
            s.status = Status.COMPLETED
            snap = s.copy()
        self._on_update(snap)

    # ------------------------------------------------------------------
    # Throttled progress update
    # ------------------------------------------------------------------

    def update(
        self,
        current_file: str,
        file_size: int,
        cumulative_bytes: int,
        start_time: float,
    ) -> bool:
        """
        Record *cumulative_bytes* transferred since *start_time*.

        Returns False (and changes nothing) if called again within the
        update interval. *file_size* is the size of *current_file*.
        """
        now = self._clock()
        with self._lock:
            perf = self._perf
            if perf.last_update is not None and now - perf.last_update < perf.update_interval:
                return False

            s = self._stats
            if current_file:
                s.current_file = current_file
            s.transferred_bytes = cumulative_bytes
            s.progress = compute_progress(cumulative_bytes, s.total_bytes)

            elapsed = now - start_time
            if elapsed > MIN_SPEED_ELAPSED:
                perf.speed_samples.append(cumulative_bytes / MIB / elapsed)
                s.current_speed = weighted_average(perf.speed_samples)
            elif cumulative_bytes > 0 and elapsed > 0:
                s.current_speed = cumulative_bytes / MIB / elapsed
            else:
                s.current_speed = 0.0

            s.estimated_time = estimate_remaining(
                s.total_bytes - cumulative_bytes, s.current_speed, s.total_bytes)

            perf.last_interval = now - perf.last_update if perf.last_update is not None else 0.0
            perf.last_update = now
            perf.last_bytes = cumulative_bytes
            snap = s.copy()
        self._on_update(snap)
        return True
