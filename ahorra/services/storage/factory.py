"""
Storage Backend Selection

Chooses the backend once at process start:
- "sql" / "document" force a backend
- "auto" uses the document store on the web (a browser Python runtime
  reports sys.platform == "emscripten") and the SQL store everywhere else
"""

import sys
from typing import Optional

import structlog

from ahorra.config import StorageSettings, get_settings
from ahorra.services.storage.document import DocumentStorageBackend
from ahorra.services.storage.interface import StorageBackend
from ahorra.services.storage.sql import SQLStorageBackend


logger = structlog.get_logger(__name__)


def detect_platform(settings: StorageSettings) -> str:
    if settings.platform:
        return settings.platform
    return "web" if sys.platform == "emscripten" else "mobile"


def create_storage_backend(
    settings: Optional[StorageSettings] = None,
) -> StorageBackend:
    """
    Build the configured storage backend (not yet initialized).

    Args:
        settings: Storage settings. Defaults to the environment.
    """
    settings = settings or get_settings().storage

    backend = settings.backend
    if backend == "auto":
        backend = "document" if detect_platform(settings) == "web" else "sql"

    logger.info("storage_backend_selected", backend=backend)

    if backend == "document":
        return DocumentStorageBackend(
            path=settings.document_path,
            init_timeout=settings.init_timeout_seconds,
        )
    return SQLStorageBackend(
        url=settings.sql_url,
        init_timeout=settings.init_timeout_seconds,
    )
