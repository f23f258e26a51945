"""Business logic services — singleton registry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cidvault.config import settings

if TYPE_CHECKING:
    from cidvault.services.ledger import Ledger
    from cidvault.services.storage_backend import StorageBackend

logger = logging.getLogger(__name__)

_storage_backend: StorageBackend | None = None
_ledger: Ledger | None = None


def init_services() -> None:
    """Create and wire up the storage backend and the ledger."""
    global _storage_backend, _ledger

    from cidvault.services.ledger import Ledger
    from cidvault.services.storage_backend import create_storage_backend

    _storage_backend = create_storage_backend(settings)
    _ledger = Ledger(path=settings.ledger_path, storage=_storage_backend)

    if _storage_backend is None:
        logger.warning(
            "No storage backend configured (CIDVAULT_STORAGE_BACKEND) — "
            "uploads keep the caller-supplied CID, downloads are disabled"
        )
    logger.info(
        "Services initialized (ledger=%s, storage=%s)",
        settings.ledger_path, settings.storage_backend,
    )


def shutdown_services() -> None:
    global _storage_backend, _ledger
    _storage_backend = None
    _ledger = None


def get_ledger() -> Ledger:
    if _ledger is None:
        raise RuntimeError("Services not initialized — call init_services() first")
    return _ledger

