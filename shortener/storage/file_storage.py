"""
FileStorage – in-memory index backed by an append-only JSON-lines journal
========================================================================

Every create appends one JSON object to the journal and fsyncs it before the
new code is returned, so a caller never sees a code that would be lost on
crash. At startup the whole journal is replayed in file order into the
in-memory index; a later line for the same short code replaces an earlier
one ("last write wins").

Deletes and owner listings work purely on the in-memory index. They become
durable at the next checkpoint, which snapshots the index and atomically
rewrites the journal from scratch (dropping superseded and malformed lines).
A checkpoint runs periodically when `checkpoint_interval` is set, and always
on `close()`.

Journal line format
-------------------
    {"id": "...", "short_url": "AbC12345", "original_url": "https://...",
     "user_id": "u1", "is_deleted": false}

Example
-------
>>> storage = FileStorage("/var/lib/shortener/urls.jsonl")
>>> result = storage.create_short_url("u1", "https://example.org/a")
>>> storage.get_original_url(result.short_code).original_url
'https://example.org/a'
>>> storage.close()   # final checkpoint
"""

import json
import logging
import os
import threading
from typing import Iterator, List, Optional, Tuple

from ..manager.generator import BaseGenerator
from .models import StorageUnavailable, URLRecord
from .storage import DEFAULT_MAX_ATTEMPTS, Storage

log = logging.getLogger(__name__)


def record_to_line(record: URLRecord) -> str:
    data = {
        "id": record.id,
        "short_url": record.short_code,
        "original_url": record.original_url,
        "user_id": record.owner_id,
        "is_deleted": record.deleted,
    }
    return json.dumps(data, ensure_ascii=False, separators=(",", ":")) + "\n"


def record_from_line(line: str) -> URLRecord:
    """Parse one journal line. Raises ValueError/KeyError/TypeError on bad input."""
    data = json.loads(line)
    short_code = data["short_url"]
    original_url = data["original_url"]
    if not isinstance(short_code, str) or not isinstance(original_url, str):
        raise TypeError("short_url and original_url must be strings")
    return URLRecord(
        id=str(data.get("id") or ""),
        short_code=short_code,
        original_url=original_url,
        owner_id=data.get("user_id") or None,
        deleted=bool(data.get("is_deleted", False)),
    )


class FileStorage(Storage):
    """Journal-backed implementation of the storage contract.

    Parameters
    ----------
    path : str
        Journal file. Created (with parent directories) if missing.
    checkpoint_interval : float, optional
        Seconds between background checkpoints. None or 0 disables them.
    """

    def __init__(
        self,
        path: str,
        generator: Optional[BaseGenerator] = None,
        logger: Optional[logging.Logger] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        checkpoint_interval: Optional[float] = None,
    ) -> None:
        super().__init__(generator=generator, logger=logger or log, max_attempts=max_attempts)
        self.path = path
        self._closed = False
        self._stop = threading.Event()
        self._checkpointer: Optional[threading.Thread] = None

        self.load()

        if checkpoint_interval:
            self._checkpointer = threading.Thread(
                target=self._checkpoint_loop,
                args=(checkpoint_interval,),
                name="journal-checkpoint",
                daemon=True,
            )
            self._checkpointer.start()

    # ---- Journal I/O ------------------------------------------------------

    def _read_journal(self) -> Iterator[Tuple[int, bytes]]:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "a+b") as fh:
            fh.seek(0)
            for lineno, line in enumerate(fh, start=1):
                yield lineno, line

    def _terminate_tail(self) -> None:
        """End a torn last line so the next append starts on a line of its own."""
        with open(self.path, "ab") as fh:
            fh.write(b"\n")
            fh.flush()
            os.fsync(fh.fileno())

    def load(self) -> Tuple[int, int]:
        """
        Replay the journal into the in-memory index.

        Returns:
            (loaded, failed): counts of applied and skipped lines.

        Raises:
            StorageUnavailable: the journal cannot be opened or read.
        """
        loaded: List[URLRecord] = []
        failed = 0
        torn = False
        try:
            for lineno, raw in self._read_journal():
                torn = not raw.endswith(b"\n")
                if not raw.strip():
                    continue
                try:
                    loaded.append(record_from_line(raw.decode("utf-8")))
                except (ValueError, KeyError, TypeError) as exc:
                    # UnicodeDecodeError is a ValueError
                    failed += 1
                    self.log.warning("skipping malformed journal line %d in %s: %s", lineno, self.path, exc)
            if torn:
                self.log.warning("journal %s ends in a partial line, terminating it", self.path)
                self._terminate_tail()
        except OSError as exc:
            raise StorageUnavailable(f"cannot read journal {self.path}: {exc}") from exc

        self.merge(loaded)
        self.log.info("loaded %d records from %s (%d malformed)", len(loaded), self.path, failed)
        return len(loaded), failed

    def _persist(self, record: URLRecord) -> None:
        """Append one record and force it to stable storage. Caller holds the write lock."""
        line = record_to_line(record)
        try:
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(line)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            self.log.error("journal append failed for %s: %s", record.short_code, exc)
            raise StorageUnavailable(f"cannot append to journal {self.path}: {exc}") from exc
        self.log.debug("journaled %s -> %s", record.short_code, record.original_url)

    def checkpoint(self) -> int:
        """
        Rewrite the journal from the current index and truncate prior history.

        The snapshot goes to a temporary file that is fsynced and then renamed
        over the journal, so a crash mid-checkpoint leaves the old journal intact.

        Returns:
            int: number of records written.
        """
        tmp_path = self.path + ".tmp"
        with self._lock.write():
            records = list(self.records.values())
            try:
                with open(tmp_path, "w", encoding="utf-8") as fh:
                    for record in records:
                        fh.write(record_to_line(record))
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_path, self.path)
            except OSError as exc:
                self.log.error("checkpoint of %s failed: %s", self.path, exc)
                raise StorageUnavailable(f"cannot checkpoint journal {self.path}: {exc}") from exc
        self.log.info("checkpointed %d records to %s", len(records), self.path)
        return len(records)

    def _checkpoint_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.checkpoint()
            except StorageUnavailable:
                self.log.exception("periodic checkpoint failed")

    # ---- Lifecycle --------------------------------------------------------

    def close(self) -> None:
        """Stop periodic checkpoints and export the index one last time."""
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        if self._checkpointer is not None:
            self._checkpointer.join()
        self.checkpoint()
