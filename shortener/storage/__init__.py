"""
Storage backends for the shortener: in-memory, file journal and PostgreSQL.
"""

from .base import BaseStorage
from .models import (
    CodeExhausted,
    CreateResult,
    LookupResult,
    LookupStatus,
    StorageError,
    StorageUnavailable,
    URLRecord,
)

__all__ = [
    "BaseStorage",
    "CodeExhausted",
    "CreateResult",
    "LookupResult",
    "LookupStatus",
    "StorageError",
    "StorageUnavailable",
    "URLRecord",
]
