"""Unit tests for throttled logging and the async log handler."""

import logging

from jogarm.server.async_logging import AsyncLogHandler
from jogarm.utils.throttle import log_throttled, reset_throttle, warn_throttled


class _Collect(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record):
        self.records.append(record)


class TestThrottle:
    def test_repeat_suppressed(self, caplog):
        log = logging.getLogger("jogarm.test.throttle")
        assert warn_throttled(log, "k", "first")
        assert not warn_throttled(log, "k", "second")
        assert "first" in caplog.text
        assert "second" not in caplog.text

    def test_keys_independent(self):
        log = logging.getLogger("jogarm.test.throttle")
        assert warn_throttled(log, "a", "x")
        assert warn_throttled(log, "b", "x")

    def test_interval_zero_never_suppresses(self):
        log = logging.getLogger("jogarm.test.throttle")
        assert log_throttled(log, logging.WARNING, "k", "x", interval=0.0)
        assert log_throttled(log, logging.WARNING, "k", "x", interval=0.0)

    def test_reset(self):
        log = logging.getLogger("jogarm.test.throttle")
        warn_throttled(log, "k", "x")
        reset_throttle()
        assert warn_throttled(log, "k", "x")

    def test_disabled_level_not_recorded(self):
        log = logging.getLogger("jogarm.test.throttle.quiet")
        log.setLevel(logging.ERROR)
        try:
            assert not warn_throttled(log, "k", "x")
        finally:
            log.setLevel(logging.NOTSET)


class TestAsyncLogHandler:
    def test_routes_through_queue_and_restores(self):
        log = logging.getLogger("jogarm.test.async")
        sink = _Collect()
        log.addHandler(sink)
        log.setLevel(logging.INFO)
        handler = AsyncLogHandler("jogarm.test.async")
        try:
            handler.start()
            assert handler.started
            assert sink not in log.handlers
            assert log.propagate is False

            log.info("queued message")
            handler.stop()

            assert [r.getMessage() for r in sink.records] == ["queued message"]
            assert log.handlers == [sink]
            assert log.propagate is True
        finally:
            handler.stop()
            log.removeHandler(sink)
            log.setLevel(logging.NOTSET)

    def test_no_handlers_is_noop(self):
        log = logging.getLogger("jogarm.test.orphan")
        log.propagate = False
        try:
            handler = AsyncLogHandler("jogarm.test.orphan")
            handler.start()
            assert not handler.started
        finally:
            log.propagate = True
