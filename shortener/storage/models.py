"""
Data types shared by every storage backend.

Results are explicit values rather than sentinels:
    - `CreateResult` tells a fresh allocation apart from a Conflict
      (the URL was already shortened; `short_code` is the existing one).
    - `LookupResult` is a three-way outcome: FOUND, NOT_FOUND or DELETED,
      so an empty URL can never be mistaken for a missing one.

Only real medium failures are exceptions (`StorageUnavailable`).
"""

import enum
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class URLRecord:
    """One short-code mapping.

    `deleted` only ever goes from False to True; records are never erased.
    """

    id: str
    short_code: str
    original_url: str
    owner_id: Optional[str] = None
    deleted: bool = False


@dataclass(frozen=True)
class CreateResult:
    """Outcome of `create_short_url`.

    conflict=False: `short_code` was freshly allocated.
    conflict=True:  the URL was already shortened and `short_code` is the
                    pre-existing (winning) code.
    """

    short_code: str
    conflict: bool = False


class LookupStatus(enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    DELETED = "deleted"


@dataclass(frozen=True)
class LookupResult:
    """Outcome of `get_original_url`."""

    status: LookupStatus
    original_url: Optional[str] = None

    @classmethod
    def found(cls, original_url: str) -> "LookupResult":
        return cls(LookupStatus.FOUND, original_url)

    @classmethod
    def not_found(cls) -> "LookupResult":
        return cls(LookupStatus.NOT_FOUND)

    @classmethod
    def deleted(cls) -> "LookupResult":
        return cls(LookupStatus.DELETED)

    @property
    def is_found(self) -> bool:
        return self.status is LookupStatus.FOUND

    @property
    def is_deleted(self) -> bool:
        return self.status is LookupStatus.DELETED


class StorageError(Exception):
    """Base class for storage failures."""


class StorageUnavailable(StorageError):
    """The underlying medium (file system, database) failed."""


class CodeExhausted(StorageError):
    """Every generated candidate code collided with an existing one."""
