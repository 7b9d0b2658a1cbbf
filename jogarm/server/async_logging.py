"""Queue-based logging so the periodic tasks never block on log I/O."""

import logging
import queue
from logging.handlers import QueueHandler, QueueListener


class AsyncLogHandler:
    """Non-blocking logging using QueueHandler + QueueListener.

    Records from the wrapped logger (and its children) are queued by the
    emitting thread and written by a background listener thread, so a slow
    console or file handler cannot add jitter to the jog or collision loops.
    """

    def __init__(self, logger_name: str = "jogarm"):
        """Initialize the async log handler.

        Args:
            logger_name: Name of the logger to wrap with async handling.
        """
        self._queue: queue.Queue[logging.LogRecord] = queue.Queue(-1)
        self._listener: QueueListener | None = None
        self._logger = logging.getLogger(logger_name)
        self._original_handlers: list[logging.Handler] = []
        self._original_propagate = self._logger.propagate
        self._own_handlers = False
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Route the logger through the queue. No-op if no handler is found."""
        if self._started:
            return

        self._own_handlers = bool(self._logger.handlers)
        if self._own_handlers:
            target_handlers = self._logger.handlers[:]
        else:
            # Usually the handlers live on the root logger
            target_handlers = []
            current: logging.Logger | None = self._logger
            while current is not None:
                if current.handlers:
                    target_handlers = current.handlers[:]
                    break
                if not current.propagate:
                    break
                current = current.parent

        if not target_handlers:
            return

        self._original_handlers = target_handlers
        self._original_propagate = self._logger.propagate

        self._logger.handlers = [QueueHandler(self._queue)]
        self._logger.propagate = False

        self._listener = QueueListener(
            self._queue, *self._original_handlers, respect_handler_level=True
        )
        self._listener.start()
        self._started = True

    def stop(self) -> None:
        """Flush queued records and restore the logger's original routing."""
        if not self._started:
            return

        if self._listener:
            self._listener.stop()
            self._listener = None

        # Handlers borrowed from an ancestor stay there
        self._logger.handlers = self._original_handlers if self._own_handlers else []
        self._logger.propagate = self._original_propagate

        self._original_handlers = []
        self._started = False
