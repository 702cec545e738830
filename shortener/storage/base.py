"""
Base storage interface for the shortener.

Purpose:
    Define one small contract that the in-memory, file-journal and
    PostgreSQL backends all satisfy, so the URL manager can be composed
    with any of them without code changes.

Contract summary:
    - create_short_url: fresh code, or the existing code flagged as conflict
    - get_original_url: FOUND / NOT_FOUND / DELETED
    - list_by_owner:    non-deleted records of one owner, any order
    - delete_batch:     owner-scoped soft delete; unknown or foreign codes skipped
    - ping:             liveness; a no-op for local backends

Testing & Coverage:
    These are abstract methods and are not executed directly in tests.
    We annotate them with `# pragma: no cover` so coverage tools don't
    penalize the project for un-runnable abstract declarations.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from .models import CreateResult, LookupResult, URLRecord


class BaseStorage(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod  # pragma: no cover
    def create_short_url(self, owner_id: Optional[str], original_url: str) -> CreateResult:
        """
        Allocate a short code for `original_url` on behalf of `owner_id`.

        Returns:
            CreateResult: conflict=False with a fresh code, or conflict=True
            with the code that already maps to this URL.

        Raises:
            StorageUnavailable: the medium failed; nothing was allocated.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def get_original_url(self, short_code: str) -> LookupResult:
        """
        Resolve a short code.

        Returns:
            LookupResult: found(url), not_found() or deleted().
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def list_by_owner(self, owner_id: str) -> List[URLRecord]:
        """Return every non-deleted record created by `owner_id`."""
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def delete_batch(self, owner_id: str, short_codes: Iterable[str]) -> None:
        """
        Soft-delete the given codes owned by `owner_id`.

        Codes that do not exist or belong to another owner are skipped.
        """
        raise NotImplementedError

    @abstractmethod  # pragma: no cover
    def ping(self, timeout: Optional[float] = None) -> None:
        """Raise StorageUnavailable if the backend cannot be reached."""
        raise NotImplementedError

    def close(self) -> None:
        """Release resources. Local backends have nothing to release."""
        return None
