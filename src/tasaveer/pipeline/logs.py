"""Batched delivery of run log lines."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

LogConsumer = Callable[[list[str]], None]

DEFAULT_FLUSH_INTERVAL = 0.1


class LogAggregator:
    """Buffer log lines and hand them to a consumer in batches.

    While active, a timer thread drains the pending buffer every ``interval``
    seconds. While inactive every push is delivered at once. Once sealed, pushes
    are dropped.

    Args:
        consumer: Callback receiving each non-empty batch, in push order.
        interval: Seconds between flushes while active.
    """

    def __init__(
        self,
        consumer: Optional[LogConsumer] = None,
        *,
        interval: float = DEFAULT_FLUSH_INTERVAL,
    ) -> None:
        self._consumer = consumer
        self._interval = interval
        self._lock = threading.RLock()
        self._pending: list[str] = []
        self._lines: list[str] = []
        self._sealed = False
        self._stop = threading.Event()
        self._timer: threading.Thread | None = None

    @property
    def lines(self) -> list[str]:
        """Return a copy of every flushed line."""
        with self._lock:
            return list(self._lines)

    @property
    def active(self) -> bool:
        """Return whether the periodic flush thread is running."""
        return self._timer is not None

    @property
    def sealed(self) -> bool:
        """Return whether further pushes are dropped."""
        return self._sealed

    def push(self, line: str) -> bool:
        """Queue ``line`` for delivery.

        Returns:
            bool: False when the aggregator is sealed and the line was dropped.
        """
        with self._lock:
            if self._sealed:
                return False
            self._pending.append(line)
            if self._timer is None:
                self._flush_locked()
            return True

    def activate(self) -> None:
        """Start periodic flushing."""
        with self._lock:
            if self._timer is not None or self._sealed:
                return
            self._stop.clear()
            self._timer = threading.Thread(
                target=self._run_timer,
                name="tasaveer-log-flush",
                daemon=True,
            )
            self._timer.start()

    def deactivate(self) -> None:
        """Stop periodic flushing and deliver anything still pending."""
        with self._lock:
            timer = self._timer
            self._timer = None
            self._stop.set()
            self._flush_locked()
        if timer is not None and timer is not threading.current_thread():
            timer.join()

    def seal(self) -> None:
        """Deliver pending lines, then drop every later push."""
        self.deactivate()
        with self._lock:
            self._sealed = True

    def flush(self) -> int:
        """Deliver pending lines now and return how many were delivered."""
        with self._lock:
            return self._flush_locked()

    def _flush_locked(self) -> int:
        if not self._pending:
            return 0
        batch = self._pending
        self._pending = []
        self._lines.extend(batch)
        if self._consumer is not None:
            try:
                self._consumer(list(batch))
            except Exception:  # pragma: no cover
                LOGGER.exception("Log consumer failed while handling %d lines.", len(batch))
        return len(batch)

    def _run_timer(self) -> None:
        while not self._stop.wait(self._interval):
            self.flush()


__all__ = ["DEFAULT_FLUSH_INTERVAL", "LogAggregator", "LogConsumer"]
