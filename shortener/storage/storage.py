"""
Storage module for the shortener (in-memory implementation).

Responsibilities:
    - Allocate short codes and map them to original URLs
    - Report an existing code as a conflict when a URL is shortened twice
    - Track which owner created each record
    - Soft-delete records on behalf of their owner

Design:
    - One dict keyed by short code plus a secondary index keyed by original URL.
    - A single reader/writer lock guards both; creates and deletes are
      exclusive, lookups and listings share the lock.
    - No persistence: state is lost on process exit. `FileStorage` adds a
      durable journal on top of this class via the `_persist` hook.
"""

import logging
import uuid
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from ..manager.generator import BaseGenerator, RandomGenerator
from .base import BaseStorage
from .locks import ReadWriteLock
from .models import CodeExhausted, CreateResult, LookupResult, URLRecord

DEFAULT_MAX_ATTEMPTS = 10


class Storage(BaseStorage):
    def __init__(
        self,
        generator: Optional[BaseGenerator] = None,
        logger: Optional[logging.Logger] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        """
        Initialize empty storage.

        Internal schema:
            self.records = {short_code: URLRecord}
            self.codes_by_url = {original_url: short_code}

        Args:
            generator: Code generator (defaults to an 8-char RandomGenerator).
            logger: Sink for diagnostics (defaults to this module's logger).
            max_attempts: Candidate codes tried before giving up on collisions.
        """
        self.generator = generator or RandomGenerator()
        self.log = logger or logging.getLogger(__name__)
        self.max_attempts = max_attempts
        self.records: Dict[str, URLRecord] = {}
        self.codes_by_url: Dict[str, str] = {}
        self._lock = ReadWriteLock()

    # ---- Internal helpers -------------------------------------------------

    def _allocate_code(self) -> str:
        """Draw candidate codes until one is unused. Caller holds the write lock."""
        for _ in range(self.max_attempts):
            code = self.generator.generate()
            if code not in self.records:
                return code
            self.log.warning("short code collision on %s, regenerating", code)
        raise CodeExhausted(f"no free short code after {self.max_attempts} attempts")

    def _index(self, record: URLRecord) -> None:
        """Insert or replace a record, keeping the URL index consistent."""
        previous = self.records.get(record.short_code)
        if previous is not None and previous.original_url != record.original_url:
            if self.codes_by_url.get(previous.original_url) == record.short_code:
                del self.codes_by_url[previous.original_url]
        self.records[record.short_code] = record
        self.codes_by_url[record.original_url] = record.short_code

    def _persist(self, record: URLRecord) -> None:
        """Hook called before a new record becomes visible. No-op in memory."""

    # ---- Contract methods -------------------------------------------------

    def create_short_url(self, owner_id: Optional[str], original_url: str) -> CreateResult:
        with self._lock.write():
            existing = self.codes_by_url.get(original_url)
            if existing is not None:
                return CreateResult(existing, conflict=True)

            record = URLRecord(
                id=str(uuid.uuid4()),
                short_code=self._allocate_code(),
                original_url=original_url,
                owner_id=owner_id,
            )
            self._persist(record)
            self._index(record)
            return CreateResult(record.short_code)

    def get_original_url(self, short_code: str) -> LookupResult:
        with self._lock.read():
            record = self.records.get(short_code)
        if record is None:
            return LookupResult.not_found()
        if record.deleted:
            return LookupResult.deleted()
        return LookupResult.found(record.original_url)

    def list_by_owner(self, owner_id: str) -> List[URLRecord]:
        with self._lock.read():
            return [r for r in self.records.values() if r.owner_id == owner_id and not r.deleted]

    def delete_batch(self, owner_id: str, short_codes: Iterable[str]) -> None:
        with self._lock.write():
            for code in short_codes:
                record = self.records.get(code)
                if record is None or record.owner_id != owner_id or record.deleted:
                    continue
                self.records[code] = replace(record, deleted=True)

    def ping(self, timeout: Optional[float] = None) -> None:
        return None

    # ---- Import / export --------------------------------------------------

    def snapshot(self) -> List[URLRecord]:
        """Return a copy of every record, deleted ones included."""
        with self._lock.read():
            return list(self.records.values())

    def merge(self, records: Iterable[URLRecord]) -> None:
        """Load records in order; a later record for the same code wins."""
        with self._lock.write():
            for record in records:
                self._index(record)
