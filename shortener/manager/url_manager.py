"""
URLManager module for the shortener.

Responsibilities:
    - Compose one storage backend chosen at construction time
    - Shorten single URLs and batches, surfacing conflicts as typed results
    - Resolve short codes and list an owner's URLs
    - Own the asynchronous delete worker's lifecycle

Design notes:
    - The backend is injected (strategy pattern); the manager never picks
      one per call.
    - Conflicts, not-found and deleted outcomes are values, not exceptions.
      Only `StorageError` (medium failure) propagates, unchanged and unretried.
    - Deletes are fire-and-forget: `delete_urls` only queues the request.
      A request that later fails in the worker is logged and lost.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from ..storage.base import BaseStorage
from ..storage.models import CreateResult, LookupResult, URLRecord
from .delete_worker import DEFAULT_QUEUE_SIZE, DeleteRequest, DeleteWorker

DEFAULT_PING_TIMEOUT = 1.0


class URLManager:
    """
    Coordinates the shortener's operations over a single storage backend.
    """

    def __init__(
        self,
        storage: BaseStorage,
        delete_queue_size: int = DEFAULT_QUEUE_SIZE,
        logger: Optional[logging.Logger] = None,
        start_worker: bool = True,
    ) -> None:
        """
        Args:
            storage: Backend instance (memory, file journal or postgres).
            delete_queue_size: Capacity of the pending-delete queue.
            logger: Diagnostics sink shared with the delete worker.
            start_worker: Start the delete worker immediately (default).
        """
        self.storage = storage
        self.log = logger or logging.getLogger(__name__)
        self.worker = DeleteWorker(storage, capacity=delete_queue_size, logger=self.log)
        if start_worker:
            self.start()

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------
    def start(self) -> None:
        self.worker.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the delete worker, then close the backend."""
        self.worker.stop(timeout)
        self.storage.close()

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def create_short_url(self, owner_id: Optional[str], original_url: str) -> CreateResult:
        """
        Shorten `original_url` for `owner_id`.

        Returns:
            CreateResult: conflict=True (with the existing code) if the URL
            was already shortened by anyone.
        """
        result = self.storage.create_short_url(owner_id, original_url)
        if result.conflict:
            self.log.info("url already shortened as %s: %s", result.short_code, original_url)
        return result

    def create_batch(
        self, owner_id: Optional[str], items: Sequence[Tuple[str, str]]
    ) -> List[Tuple[str, CreateResult]]:
        """
        Shorten `(correlation_id, original_url)` pairs in order.

        Conflicting URLs yield their existing code. The first storage error
        aborts the batch; codes allocated before it remain allocated.
        """
        return [(cid, self.create_short_url(owner_id, url)) for cid, url in items]

    def get_original_url(self, short_code: str) -> LookupResult:
        return self.storage.get_original_url(short_code)

    def list_user_urls(self, owner_id: str) -> List[URLRecord]:
        return self.storage.list_by_owner(owner_id)

    def delete_urls(self, owner_id: str, short_codes: Iterable[str], timeout: Optional[float] = None) -> None:
        """
        Queue an owner-scoped soft delete and return without waiting for it.

        Raises:
            DeleteRejected: queue full past `timeout`, or worker stopped.
        """
        codes = list(short_codes)
        if not codes:
            return
        self.worker.enqueue(DeleteRequest(owner_id=owner_id, short_codes=codes), timeout=timeout)

    def ping(self, timeout: float = DEFAULT_PING_TIMEOUT) -> None:
        self.storage.ping(timeout=timeout)
