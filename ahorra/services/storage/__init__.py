"""
Storage Services Package

Provides the abstract storage interface and its two implementations:
an embedded SQL store (devices) and a flat keyed-blob store (web).
"""

from ahorra.services.storage.interface import (
    DuplicateError,
    InitializationTimeoutError,
    NotFoundError,
    StorageBackend,
    StorageError,
)
from ahorra.services.storage.document import BlobStore, DocumentStorageBackend
from ahorra.services.storage.sql import SQLStorageBackend
from ahorra.services.storage.factory import create_storage_backend, detect_platform

__all__ = [
    # Interface
    "StorageBackend",
    # Exceptions
    "DuplicateError",
    "InitializationTimeoutError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "BlobStore",
    "DocumentStorageBackend",
    "SQLStorageBackend",
    # Selection
    "create_storage_backend",
    "detect_platform",
]
