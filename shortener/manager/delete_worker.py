"""
Asynchronous soft-delete worker.

A single background thread drains a bounded queue of `DeleteRequest`s and
applies each one to the storage backend, off the request path.

Semantics (at-most-once, best-effort):
    - `enqueue` returns once the request is queued, or raises `DeleteRejected`
      if the queue stays full past the caller's timeout or the worker is stopped.
    - Backend calls are not bound to the caller's deadline; a client that
      disconnects does not cancel a queued delete.
    - A request that fails inside the worker is logged and dropped. It is not
      retried and the original caller is not told. `dropped` counts them.
    - After `stop()` no further requests are processed; anything still queued
      is discarded and logged.
"""

import enum
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from ..storage.base import BaseStorage

DEFAULT_QUEUE_SIZE = 100
_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class DeleteRequest:
    owner_id: str
    short_codes: List[str] = field(default_factory=list)


class DeleteRejected(Exception):
    """The delete request could not be queued."""


class WorkerState(enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class DeleteWorker:
    def __init__(
        self,
        storage: BaseStorage,
        capacity: int = DEFAULT_QUEUE_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.storage = storage
        self.log = logger or logging.getLogger(__name__)
        self._queue: "queue.Queue[DeleteRequest]" = queue.Queue(maxsize=capacity)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self.state = WorkerState.STOPPED
        self.processed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        with self._state_lock:
            if self.state is WorkerState.RUNNING:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="delete-worker", daemon=True)
            self.state = WorkerState.RUNNING
            self._thread.start()
        self.log.info("delete worker started")

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._state_lock:
            if self.state is WorkerState.STOPPED:
                return
            self.state = WorkerState.STOPPED
            self._stop.set()
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
        with self._state_lock:
            self._discard_pending()
        self.log.info("delete worker stopped")

    def _discard_pending(self) -> None:
        """Drop everything still queued. Caller holds the state lock."""
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
            discarded += 1
        self.dropped += discarded
        if discarded:
            self.log.warning("delete worker stopped with %d pending requests discarded", discarded)

    def enqueue(self, request: DeleteRequest, timeout: Optional[float] = None) -> None:
        """
        Queue a delete request.

        Args:
            request: Owner and codes to soft-delete.
            timeout: Seconds to wait for space when the queue is full;
                None waits indefinitely, 0 fails immediately.

        Raises:
            DeleteRejected: worker stopped, or no space before the timeout.
        """
        if self.state is not WorkerState.RUNNING:
            raise DeleteRejected("delete worker is not running")
        try:
            if timeout == 0:
                self._queue.put_nowait(request)
            else:
                self._queue.put(request, timeout=timeout)
        except queue.Full as exc:
            raise DeleteRejected("delete queue is full") from exc
        # stop() may have drained the queue while this put was blocked
        with self._state_lock:
            if self.state is not WorkerState.RUNNING:
                self._discard_pending()
                raise DeleteRejected("delete worker is not running")

    def wait_idle(self) -> None:
        """Block until every queued request has been applied or dropped."""
        self._queue.join()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                request = self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue
            try:
                if self._stop.is_set():
                    self.dropped += 1
                    break
                self._apply(request)
            finally:
                self._queue.task_done()

    def _apply(self, request: DeleteRequest) -> None:
        try:
            self.storage.delete_batch(request.owner_id, request.short_codes)
        except Exception:
            self.dropped += 1
            self.log.exception(
                "dropping delete request for %s (%d codes)", request.owner_id, len(request.short_codes)
            )
            return
        self.processed += 1
