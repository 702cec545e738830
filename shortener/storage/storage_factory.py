"""
Storage factory – switch storage backend from config
====================================================

Centralizes selection of the storage backend (memory, file journal or
PostgreSQL) so the rest of the app stays ignorant of where data lives.

- Reads environment **at call time** to avoid stale values in tests.
- Imports the DB backend **only if** the selected backend is "postgres".
- With no backend configured: postgres if a DSN is set, else file if a
  journal path is set, else memory.
"""

import logging
from typing import Optional

from shortener.config import load_settings
from shortener.manager.generator import RandomGenerator
from shortener.storage.base import BaseStorage
from shortener.storage.file_storage import FileStorage
from shortener.storage.storage import Storage

log = logging.getLogger(__name__)


def get_storage(backend: Optional[str] = None, **kwargs) -> BaseStorage:
    """
    Return a storage backend based on configuration.

    Parameters
    ----------
    backend : str, optional
        "memory", "file" or "postgres". If omitted, reads SHORTENER_STORAGE_BACKEND
        and falls back to auto-selection.
    kwargs : dict
        Overrides: dsn="..." (postgres), path="..." (file), generator=...,
        logger=....

    Returns
    -------
    BaseStorage-compatible instance
    """
    cfg = load_settings()
    dsn = kwargs.get("dsn") or cfg.DB_DSN
    path = kwargs.get("path") or cfg.FILE_STORAGE_PATH
    generator = kwargs.get("generator") or RandomGenerator(length=cfg.CODE_LENGTH)
    logger = kwargs.get("logger")

    be = (backend or cfg.STORAGE_BACKEND).lower()
    if not be:
        be = "postgres" if dsn else "file" if path else "memory"
    log.info("Selected storage backend: %r", be)

    if be == "memory":
        return Storage(generator=generator, logger=logger)

    if be == "file":
        if not path:
            raise ValueError("FILE_STORAGE_PATH is required for file backend (env SHORTENER_FILE_STORAGE_PATH)")
        interval = kwargs.get("checkpoint_interval", cfg.CHECKPOINT_INTERVAL)
        return FileStorage(path, generator=generator, logger=logger, checkpoint_interval=interval)

    if be == "postgres":
        if not dsn:
            raise ValueError("DB_DSN is required for postgres backend (env SHORTENER_DB_DSN)")
        # Local import to avoid hard dependency when not using postgres
        from shortener.storage.db_storage import DBStorage

        storage = DBStorage(dsn=dsn, generator=generator, logger=logger)
        storage.ensure_schema()
        return storage

    raise ValueError(f"Unknown storage backend: {be!r}")
