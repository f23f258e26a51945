"""File metadata ledger: JSON persistence and command dispatch."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import os
import tempfile
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from cidvault.config import settings
from cidvault.schemas.files import FileIdCommand, FileRecord, ListCommand, PurgeCommand, UploadCommand
from cidvault.services.storage_backend import StorageBackend, StorageError
from cidvault.utils.hashing import hash_bytes

logger = logging.getLogger(__name__)

Records = dict[str, FileRecord]

FILE_NOT_FOUND = "File not found"
INVALID_ACTION = "Invalid action"


class LedgerError(Exception):
    """Base class for failures that abort a ledger command."""


class LedgerCorruptError(LedgerError):
    """The durable ledger exists but cannot be trusted."""


class LedgerWriteError(LedgerError):
    """The ledger could not be written back to disk."""


class InvalidPayloadError(LedgerError):
    """An upload payload is not valid base64."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _error(message: str) -> dict[str, Any]:
    return {"error": message}


def decode_payload(data: str) -> bytes:
    """Strictly decode a base64 payload."""
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidPayloadError(f"Invalid base64 payload: {e}") from e


def new_file_id(existing: Records | None = None) -> str:
    """Mint a `file_<epoch-ms>_<hex>` id that is not already a ledger key."""
    while True:
        file_id = f"file_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        if not existing or file_id not in existing:
            return file_id


class Ledger:
    """Durable id -> FileRecord mapping with soft-delete and recycle bin.

    The ledger file is re-read at the start of every command and rewritten
    wholesale after every mutation. Commands on one instance are serialized
    by an asyncio lock; separate processes sharing the file are not.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        storage: StorageBackend | None = None,
        enforce_owner_on_mutation: bool | None = None,
    ):
        self._path = Path(path or settings.ledger_path)
        self._storage = storage
        if enforce_owner_on_mutation is None:
            enforce_owner_on_mutation = settings.enforce_owner_on_mutation
        self._enforce_owner = enforce_owner_on_mutation
        self._lock = asyncio.Lock()
        self._handlers: dict[str, Callable[[dict], Awaitable[dict[str, Any]]]] = {
            "Upload": self._upload,
            "List": self._list,
            "ListDeleted": self._list_deleted,
            "Delete": self._delete,
            "Restore": self._restore,
            "empty_recycle_bin": self._empty_recycle_bin,
            "Download": self._download,
        }

    # --- persistence ---

    def load(self) -> Records:
        """Read the full ledger; a missing file is an empty ledger."""
        if not self._path.exists():
            return {}

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LedgerCorruptError(f"{self._path}: {e}") from e

        if not isinstance(raw, dict):
            raise LedgerCorruptError(f"{self._path}: expected a JSON object")

        records: Records = {}
        for key, value in raw.items():
            try:
                record = FileRecord.model_validate(value)
            except ValidationError as e:
                raise LedgerCorruptError(f"record {key!r}: {e.errors()[0]['msg']}") from e
            if record.id != key:
                raise LedgerCorruptError(f"record {key!r} carries id {record.id!r}")
            records[key] = record
        return records

    def save(self, records: Records) -> None:
        """Atomically replace the ledger file with `records`."""
        data = {file_id: record.model_dump(mode="json") for file_id, record in records.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise LedgerWriteError(f"{self._path}: {e}") from e

    # --- dispatch ---

    async def handle_action(self, raw: str | bytes | dict) -> dict[str, Any]:
        """Apply one JSON command and return its JSON-compatible result."""
        if isinstance(raw, dict):
            payload = raw
        else:
            try:
                payload = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError):
                logger.warning("Rejected command: invalid JSON")
                return _error("Invalid JSON input")
            if not isinstance(payload, dict):
                logger.warning("Rejected command: envelope is %s", type(payload).__name__)
                return _error("Invalid command envelope")

        action = payload.get("action")
        handler = self._handlers.get(action) if isinstance(action, str) else None
        if handler is None:
            logger.warning("Rejected command: unknown action %r", action)
            return _error(INVALID_ACTION)

        async with self._lock:
            try:
                return await handler(payload)
            except ValidationError as e:
                logger.warning("Rejected %s command: %s", action, e)
                return _error(f"Invalid command: {_describe(e)}")
            except InvalidPayloadError as e:
                logger.warning("Rejected %s command: %s", action, e)
                return _error("Invalid base64 payload")
            except LedgerCorruptError as e:
                logger.error("Ledger is corrupted, refusing %s: %s", action, e)
                return _error(f"Ledger is corrupted: {e}")
            except LedgerWriteError as e:
                logger.error("Failed to persist ledger after %s: %s", action, e)
                return _error(f"Failed to persist ledger: {e}")
            except StorageError as e:
                logger.error("Storage backend failed during %s: %s", action, e)
                return _error(f"Storage backend failed: {e}")

    async def handle_action_json(self, raw: str | bytes | dict) -> str:
        return json.dumps(await self.handle_action(raw))

    # --- commands ---

    async def _upload(self, payload: dict) -> dict[str, Any]:
        cmd = UploadCommand.model_validate(payload)
        data = decode_payload(cmd.base64)
        records = self.load()

        file_id = new_file_id(records)
        if self._storage is not None:
            content_id = await self._storage.store(file_id, data)
        else:
            content_id = cmd.cid

        record = FileRecord(
            id=file_id,
            filename=cmd.filename,
            size=cmd.size,
            hash=hash_bytes(data),
            project=cmd.project,
            content_id=content_id,
            owner=cmd.owner,
            created_at=_now(),
        )
        records[file_id] = record
        try:
            self.save(records)
        except LedgerWriteError:
            if self._storage is not None:
                await self._storage.forget(file_id)
            raise

        logger.info("Uploaded %s (%s, %d bytes) for %s", file_id, cmd.filename, cmd.size, cmd.owner)
        return {"status": "uploaded", "file": record.model_dump(mode="json")}

    def _select(self, payload: dict, deleted: bool) -> dict[str, Any]:
        cmd = ListCommand.model_validate(payload)
        return {
            file_id: record.model_dump(mode="json")
            for file_id, record in self.load().items()
            if record.owner == cmd.owner
            and record.is_deleted == deleted
            and (cmd.project is None or record.project == cmd.project)
        }

    async def _list(self, payload: dict) -> dict[str, Any]:
        return self._select(payload, deleted=False)

    async def _list_deleted(self, payload: dict) -> dict[str, Any]:
        return self._select(payload, deleted=True)

    def _find_for_mutation(self, records: Records, cmd: FileIdCommand) -> FileRecord | None:
        record = records.get(cmd.id)
        if record is None:
            return None
        if self._enforce_owner and record.owner != cmd.owner:
            logger.warning("%s refused: %s is not owned by %s", cmd.action, cmd.id, cmd.owner)
            return None
        return record

    async def _delete(self, payload: dict) -> dict[str, Any]:
        cmd = FileIdCommand.model_validate(payload)
        records = self.load()
        record = self._find_for_mutation(records, cmd)
        if record is None:
            return _error(FILE_NOT_FOUND)

        records[cmd.id] = record.model_copy(update={"is_deleted": True, "deleted_at": _now()})
        self.save(records)
        logger.info("Moved %s to recycle bin", cmd.id)
        return {"status": "deleted", "id": cmd.id}

    async def _restore(self, payload: dict) -> dict[str, Any]:
        cmd = FileIdCommand.model_validate(payload)
        records = self.load()
        record = self._find_for_mutation(records, cmd)
        if record is None:
            return _error(FILE_NOT_FOUND)

        records[cmd.id] = record.model_copy(update={"is_deleted": False, "deleted_at": None})
        self.save(records)
        logger.info("Restored %s", cmd.id)
        return {"status": "restored", "id": cmd.id}

    async def _empty_recycle_bin(self, payload: dict) -> dict[str, Any]:
        cmd = PurgeCommand.model_validate(payload)
        records = self.load()
        if cmd.id is not None:
            record = records.get(cmd.id)
            if record is None or record.owner != cmd.owner or not record.is_deleted:
                return _error(FILE_NOT_FOUND)
            purged = [cmd.id]
        else:
            purged = [
                file_id for file_id, record in records.items()
                if record.owner == cmd.owner and record.is_deleted
            ]
        if purged:
            for file_id in purged:
                del records[file_id]
            self.save(records)
            if self._storage is not None:
                for file_id in purged:
                    await self._storage.forget(file_id)
            logger.info("Emptied recycle bin for %s: %d removed", cmd.owner, len(purged))
        return {"status": "recycle bin emptied", "removed": len(purged)}

    async def _download(self, payload: dict) -> dict[str, Any]:
        cmd = FileIdCommand.model_validate(payload)
        record = self.load().get(cmd.id)
        if record is None or record.owner != cmd.owner or record.is_deleted:
            return _error(FILE_NOT_FOUND)
        if self._storage is None:
            return _error("No storage backend configured")

        data = await self._storage.retrieve(cmd.id)
        return {
            "status": "downloaded",
            "file": record.model_dump(mode="json"),
            "base64": base64.b64encode(data).decode("ascii"),
        }


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "command"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
