"""
In-memory reading buffer with a capped retry queue.

Two FIFO queues behind one lock:
- incoming: freshly produced readings
- retry: readings from failed delivery attempts, capped with oldest-first eviction

Retry contents are always drained ahead of incoming ones.
"""
import threading
from collections import deque
from typing import Any, Iterable

import structlog

from ..models import Reading

logger = structlog.get_logger()

DEFAULT_RETRY_MAX = 1000


class ReadingBuffer:
    """Incoming and retry queues shared by the producer and the flush worker."""

    def __init__(self, retry_max: int = DEFAULT_RETRY_MAX):
        if retry_max < 1:
            raise ValueError("retry_max must be at least 1")
        self.retry_max = retry_max
        self._incoming: deque[Reading] = deque()
        self._retry: deque[Reading] = deque()
        self._lock = threading.Lock()

    def add(self, reading: Reading) -> None:
        """Append a fresh reading. Never blocks beyond the append, never fails."""
        with self._lock:
            self._incoming.append(reading)

    def drain_all(self) -> list[Reading]:
        """
        Empty both queues and return their contents.

        The retry queue is trimmed to the cap first, then returned ahead
        of incoming readings.

        Returns:
            List of readings, retry first, each queue in arrival order
        """
        with self._lock:
            self._trim_retry()
            drained = list(self._retry)
            drained.extend(self._incoming)
            self._retry.clear()
            self._incoming.clear()

        if drained:
            logger.debug("buffer_drained", count=len(drained))
        return drained

    def requeue_failed(self, readings: Iterable[Reading]) -> None:
        """Append undelivered readings to the retry queue, enforcing the cap."""
        with self._lock:
            self._retry.extend(readings)
            self._trim_retry()

    def size(self) -> int:
        with self._lock:
            return len(self._incoming) + len(self._retry)

    def clear(self) -> None:
        """Drop everything in both queues."""
        with self._lock:
            dropped = len(self._incoming) + len(self._retry)
            self._incoming.clear()
            self._retry.clear()
        logger.info("buffer_cleared", dropped=dropped)

    def stats(self) -> dict[str, Any]:
        """
        Get buffer statistics.

        Returns:
            Dict with incoming, retry and retry_max
        """
        with self._lock:
            return {
                'incoming': len(self._incoming),
                'retry': len(self._retry),
                'retry_max': self.retry_max,
            }

    def _trim_retry(self) -> None:
        # Caller holds the lock
        excess = len(self._retry) - self.retry_max
        if excess <= 0:
            return

        logger.warning(
            "retry_buffer_trimmed",
            evicted_count=excess,
            retry_max=self.retry_max
        )
        for _ in range(excess):
            self._retry.popleft()
