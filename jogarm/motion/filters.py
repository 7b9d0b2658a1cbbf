"""
Second-order low-pass filtering for joint positions and velocities.

The filter is a Butterworth-style biquad parameterized by a single damping
coefficient ``c`` (larger = smoother, more lag). Each filter keeps three raw
samples and two filtered samples. ``reset(x)`` primes the whole history with
``x`` so a resumed output starts exactly at ``x`` instead of being pulled
toward stale pre-halt samples.
"""

import math

import numpy as np
from numba import njit  # type: ignore[import-untyped]
from numpy.typing import ArrayLike, NDArray

_SQRT2 = math.sqrt(2.0)


@njit(cache=True)
def _biquad_step(
    raw: np.ndarray, filtered: np.ndarray, x: float, c: float
) -> float:
    """Shift histories in place and return the new filtered sample."""
    raw[2] = raw[1]
    raw[1] = raw[0]
    raw[0] = x

    c2 = c * c
    y = (
        raw[2]
        + 2.0 * raw[1]
        + raw[0]
        - (c2 - _SQRT2 * c + 1.0) * filtered[1]
        - (2.0 - 2.0 * c2) * filtered[0]
    ) / (1.0 + c2 + _SQRT2 * c)

    filtered[1] = filtered[0]
    filtered[0] = y
    return y


class LowPassFilter:
    """Single-channel second-order low-pass filter."""

    __slots__ = ("coeff", "_raw", "_filtered")

    def __init__(self, coeff: float, initial: float = 0.0):
        if not coeff > 0.0:
            raise ValueError(f"Filter coefficient must be positive, got {coeff}")
        self.coeff = float(coeff)
        self._raw = np.full(3, initial, dtype=np.float64)
        self._filtered = np.full(2, initial, dtype=np.float64)

    def filter(self, x: float) -> float:
        return _biquad_step(self._raw, self._filtered, float(x), self.coeff)

    def reset(self, x: float) -> None:
        self._raw[:] = x
        self._filtered[:] = x


class FilterBank:
    """One LowPassFilter per joint, sized once at startup."""

    __slots__ = ("_filters",)

    def __init__(self, size: int, coeff: float):
        self._filters = tuple(LowPassFilter(coeff) for _ in range(size))

    def __len__(self) -> int:
        return len(self._filters)

    def filter(self, values: NDArray[np.float64], out: NDArray[np.float64]) -> None:
        """Filter ``values`` element-wise into ``out`` (may alias ``values``)."""
        for i, f in enumerate(self._filters):
            out[i] = f.filter(values[i])

    def reset(self, values: ArrayLike) -> None:
        """Reset every channel; a scalar resets all channels to the same value."""
        arr = np.broadcast_to(np.asarray(values, dtype=np.float64), (len(self._filters),))
        for f, v in zip(self._filters, arr):
            f.reset(float(v))
