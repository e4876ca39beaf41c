from __future__ import annotations

import logging
import queue
import threading

from mediagrab.domain.models.event import ProgressEvent

logger = logging.getLogger(__name__)


class EventChannel:
    """Single-job, one-way event queue between the job thread and the HTTP reader.

    A ``ready`` event is queued on construction. The reader calls
    :meth:`mark_attached` once it has taken that event, which releases
    :meth:`wait_until_attached` in the job thread. Nothing is accepted after a
    terminal event, and closing the channel before a terminal event counts as
    cancellation.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._queue: queue.Queue[ProgressEvent] = queue.Queue()
        self._lock = threading.Lock()
        self._attached = threading.Event()
        self._closed = threading.Event()
        self._terminal_published = False
        self._seq = 0
        self._queue.put(ProgressEvent.ready(job_id))

    def publish(self, event: ProgressEvent) -> bool:
        with self._lock:
            if self._closed.is_set() or self._terminal_published:
                logger.debug("Dropping %s event for job %s; channel no longer open", event.kind, self.job_id)
                return False
            self._seq += 1
            if event.is_terminal:
                self._terminal_published = True
            self._queue.put(event)
            return True

    def next_event(self, timeout: float) -> ProgressEvent | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def mark_attached(self) -> None:
        self._attached.set()

    def wait_until_attached(self, timeout: float) -> bool:
        self._attached.wait(timeout)
        return self._attached.is_set() and not self._closed.is_set()

    def close(self) -> None:
        self._closed.set()
        # Release a job thread still waiting on the handshake.
        self._attached.set()

    def cancelled(self) -> bool:
        return self._closed.is_set() and not self._terminal_published

    @property
    def published_count(self) -> int:
        return self._seq

    @property
    def terminal_published(self) -> bool:
        return self._terminal_published
