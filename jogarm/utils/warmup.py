"""
JIT warmup utilities.

Call warmup_jit() on startup to compile the numba kernels before the periodic
tasks start. With cache=True this is fast once the cache exists.
"""

import logging
import time

import numpy as np

from jogarm.motion.filters import _biquad_step
from jogarm.server.loop_timer import BUFFER_SIZE, _period_stats

logger = logging.getLogger(__name__)


def warmup_jit() -> float:
    """
    Pre-compile all numba JIT functions by calling them with dummy data.

    Returns the time taken in seconds.
    """
    logger.info("Warming JIT...")
    start = time.perf_counter()

    # jogarm/motion/filters.py
    _biquad_step(np.zeros(3), np.zeros(2), 0.0, 2.0)

    # jogarm/server/loop_timer.py
    samples = np.zeros(BUFFER_SIZE, dtype=np.float64)
    scratch = np.zeros(BUFFER_SIZE, dtype=np.float64)
    _period_stats(samples, scratch, 0)
    _period_stats(samples, scratch, 32)

    elapsed = time.perf_counter() - start
    logger.info(f"JIT warmup completed in {elapsed * 1000:.1f}ms")
    return elapsed
