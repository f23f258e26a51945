"""Storage backend contract and the shared id -> CID side-file convention."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cidvault.config import Settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the content-addressed store cannot store or return bytes."""


@runtime_checkable
class StorageBackend(Protocol):
    """Persists payloads in a content-addressed store, keyed by logical id."""

    async def store(self, file_id: str, data: bytes) -> str:
        """Store bytes, record the id -> CID mapping and return the CID."""
        ...

    async def retrieve(self, file_id: str) -> bytes:
        """Return the bytes previously stored under file_id."""
        ...

    async def forget(self, file_id: str) -> None:
        """Drop the id -> CID mapping; the stored content is left alone."""
        ...


class CidMappingStore:
    """One small text file per logical id holding its content identifier."""

    PREFIX = "ipfs_cid_"

    def __init__(self, directory: str | Path):
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, file_id: str) -> Path:
        if not file_id or "/" in file_id or "\\" in file_id or ".." in file_id:
            raise StorageError(f"Invalid file id for CID mapping: {file_id!r}")
        return self._dir / f"{self.PREFIX}{file_id}.txt"

    def write(self, file_id: str, cid: str) -> None:
        path = self.path_for(file_id)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            path.write_text(cid, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to record CID for {file_id}: {e}") from e

    def read(self, file_id: str) -> str:
        path = self.path_for(file_id)
        try:
            cid = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError as e:
            raise StorageError(f"CID not found for {file_id}") from e
        except OSError as e:
            raise StorageError(f"Failed to read CID for {file_id}: {e}") from e
        if not cid:
            raise StorageError(f"CID not found for {file_id}")
        return cid

    def remove(self, file_id: str) -> None:
        try:
            self.path_for(file_id).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove CID mapping for %s: %s", file_id, e)


def create_storage_backend(settings: Settings) -> StorageBackend | None:
    """Build the backend selected by settings.storage_backend."""
    kind = settings.storage_backend
    if kind == "none":
        return None

    mapping = CidMappingStore(settings.cid_dir)
    if kind == "cli":
        from cidvault.services.ipfs_cli import IpfsCliStorage

        return IpfsCliStorage(
            mapping=mapping,
            binary=settings.ipfs_binary,
            scratch_dir=settings.scratch_dir,
            timeout=settings.storage_timeout_seconds,
        )
    if kind == "http":
        from cidvault.services.ipfs_http import IpfsHttpStorage

        return IpfsHttpStorage(
            mapping=mapping,
            api_url=settings.ipfs_api_url,
            gateway_url=settings.ipfs_gateway_url,
            timeout=settings.storage_timeout_seconds,
        )
    raise ValueError(f"Unknown storage backend: {kind}")
