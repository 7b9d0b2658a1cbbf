"""Deadline-based periodic scheduling with cooperative cancellation and loop metrics."""

import threading
import time

import numpy as np
from numba import njit  # type: ignore[import-untyped]

from jogarm import config as cfg

# Rolling window of loop periods kept for statistics (power of 2 for masking)
BUFFER_SIZE = 1024
BUFFER_MASK = BUFFER_SIZE - 1


@njit(cache=True)
def _period_stats(
    samples: np.ndarray, scratch: np.ndarray, n: int
) -> tuple[float, float, float, float]:
    """Mean, std, max and p99 of the first n samples."""
    if n == 0:
        return 0.0, 0.0, 0.0, 0.0

    # Welford
    mean = 0.0
    m2 = 0.0
    max_val = samples[0]
    for i in range(n):
        x = samples[i]
        delta = x - mean
        mean += delta / (i + 1)
        m2 += delta * (x - mean)
        if x > max_val:
            max_val = x
    std = np.sqrt(m2 / n)

    if n < 20:
        return mean, std, max_val, max_val
    for i in range(n):
        scratch[i] = samples[i]
    ordered = np.sort(scratch[:n])
    return mean, std, max_val, ordered[int(n * 0.99)]


class LoopMetrics:
    """Period statistics for one periodic task."""

    __slots__ = (
        "loop_count",
        "overrun_count",
        "mean_period_s",
        "std_period_s",
        "max_period_s",
        "p99_period_s",
        "_buffer",
        "_scratch",
        "_buffer_idx",
        "_buffer_count",
        "_target_period_s",
        "_last_warn_time",
        "_last_log_time",
    )

    def __init__(self, target_period_s: float = 0.0) -> None:
        self.loop_count = 0
        self.overrun_count = 0
        self.mean_period_s = 0.0
        self.std_period_s = 0.0
        self.max_period_s = 0.0
        self.p99_period_s = 0.0
        self._buffer = np.zeros(BUFFER_SIZE, dtype=np.float64)
        self._scratch = np.zeros(BUFFER_SIZE, dtype=np.float64)
        self._buffer_idx = 0
        self._buffer_count = 0
        self._target_period_s = target_period_s
        self._last_warn_time = 0.0
        self._last_log_time = 0.0

    def record_period(self, period: float) -> None:
        self._buffer[self._buffer_idx] = period
        self._buffer_idx = (self._buffer_idx + 1) & BUFFER_MASK
        if self._buffer_count < BUFFER_SIZE:
            self._buffer_count += 1

    def compute_stats(self) -> None:
        if self._buffer_count == 0:
            return
        mean, std, max_val, p99 = _period_stats(
            self._buffer, self._scratch, self._buffer_count
        )
        self.mean_period_s = mean
        self.std_period_s = std
        self.max_period_s = max_val
        self.p99_period_s = p99

    def should_log(self, now: float, interval: float) -> bool:
        """True (and remember ``now``) once per ``interval`` seconds."""
        if now - self._last_log_time >= interval:
            self._last_log_time = now
            return True
        return False

    def check_degraded(
        self, now: float, threshold: float, rate_limit: float
    ) -> tuple[bool, float]:
        """(should_warn, pct) when p99 exceeds target by ``threshold``, rate-limited."""
        if self._target_period_s <= 0 or self.p99_period_s <= 0:
            return False, 0.0
        if now - self._last_warn_time < rate_limit:
            return False, 0.0
        if self.p99_period_s > self._target_period_s * (1.0 + threshold):
            self._last_warn_time = now
            return True, (self.p99_period_s / self._target_period_s - 1.0) * 100.0
        return False, 0.0


def format_hz_summary(m: LoopMetrics) -> str:
    """Format metrics as 'XXX.XHz σ=X.XXms p99=X.XXms'."""
    if m.mean_period_s <= 0:
        return "0.0Hz σ=0.00ms p99=0.00ms"
    hz = 1.0 / m.mean_period_s
    return (
        f"{hz:.1f}Hz σ={m.std_period_s * 1000:.2f}ms p99={m.p99_period_s * 1000:.2f}ms"
    )


class LoopTimer:
    """
    Fixed-period scheduler that can be cancelled between iterations.

    Waits on the stop event for most of the interval, then spins for the last
    ``busy_threshold_s`` to hit the deadline precisely. On overrun the
    deadline is re-based to now rather than trying to catch up.
    """

    def __init__(
        self,
        interval_s: float,
        stop_event: threading.Event,
        busy_threshold_s: float | None = None,
        stats_interval: int = 50,
    ):
        self._interval = interval_s
        self._stop = stop_event
        self._busy_threshold = (
            busy_threshold_s
            if busy_threshold_s is not None
            else cfg.BUSY_THRESHOLD_MS / 1000.0
        )
        self._stats_interval = stats_interval
        self._next_deadline = 0.0
        self._prev_t = 0.0
        self.metrics = LoopMetrics(interval_s)

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        now = time.perf_counter()
        self._next_deadline = now
        self._prev_t = now

    def wait_for_next_tick(self) -> bool:
        """Block until the next deadline. Returns False once stop is requested."""
        m = self.metrics
        m.loop_count += 1
        if m.loop_count % self._stats_interval == 0:
            m.compute_stats()

        self._next_deadline += self._interval
        sleep_time = self._next_deadline - time.perf_counter()

        if sleep_time > self._busy_threshold:
            if self._stop.wait(sleep_time - self._busy_threshold):
                return False

        if sleep_time > 0:
            while time.perf_counter() < self._next_deadline:
                pass
            now = time.perf_counter()
        else:
            m.overrun_count += 1
            now = time.perf_counter()
            self._next_deadline = now

        m.record_period(now - self._prev_t)
        self._prev_t = now
        return not self._stop.is_set()
