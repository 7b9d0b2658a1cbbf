"""Rate-limited logging for messages emitted from periodic loops."""

import logging
import threading
import time

from jogarm import config as cfg

_last_emit: dict[tuple[str, str], float] = {}
_lock = threading.Lock()


def log_throttled(
    logger: logging.Logger,
    level: int,
    key: str,
    msg: str,
    *args: object,
    interval: float | None = None,
) -> bool:
    """
    Log ``msg`` at most once per ``interval`` seconds for each (logger, key).

    Returns True if the message was emitted.
    """
    if not logger.isEnabledFor(level):
        return False
    period = cfg.WARN_THROTTLE_S if interval is None else interval
    now = time.monotonic()
    slot = (logger.name, key)
    with _lock:
        last = _last_emit.get(slot)
        if last is not None and now - last < period:
            return False
        _last_emit[slot] = now
    logger.log(level, msg, *args)
    return True


def warn_throttled(logger: logging.Logger, key: str, msg: str, *args: object) -> bool:
    return log_throttled(logger, logging.WARNING, key, msg, *args)


def reset_throttle() -> None:
    """Forget emission times (used by tests)."""
    with _lock:
        _last_emit.clear()
