"""IPFS storage through the local `ipfs` command-line tool."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from cidvault.services.storage_backend import CidMappingStore, StorageError

logger = logging.getLogger(__name__)


class IpfsCliStorage:
    """Adds and pins payloads with `ipfs add`, reads them back with `ipfs cat`."""

    def __init__(
        self,
        mapping: CidMappingStore,
        binary: str = "ipfs",
        scratch_dir: str | Path = "/tmp",
        timeout: float = 30.0,
    ):
        self._mapping = mapping
        self._binary = binary
        self._scratch_dir = Path(scratch_dir)
        self._timeout = timeout

    async def _run(self, *args: str) -> bytes:
        """Run the ipfs binary and return stdout, raising StorageError on failure."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise StorageError(f"IPFS CLI error: {self._binary} not found") from e
        except OSError as e:
            raise StorageError(f"IPFS CLI error: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise StorageError(
                f"IPFS CLI error: `ipfs {args[0]}` timed out after {self._timeout}s"
            ) from e

        if proc.returncode != 0:
            message = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
            raise StorageError(f"IPFS {args[0]} failed: {message}")
        return stdout

    async def store(self, file_id: str, data: bytes) -> str:
        # Validates the id before anything touches the filesystem
        self._mapping.path_for(file_id)

        tmp_path = self._scratch_dir / f"{file_id}.bin"
        try:
            self._scratch_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write scratch file: {e}") from e

        try:
            stdout = await self._run("add", "--pin", "-Q", str(tmp_path))
        finally:
            tmp_path.unlink(missing_ok=True)

        cid = stdout.decode(errors="replace").strip()
        if not cid:
            raise StorageError("IPFS add returned no CID")

        self._mapping.write(file_id, cid)
        logger.info("Stored %s via ipfs CLI: %s (%d bytes)", file_id, cid, len(data))
        return cid

    async def retrieve(self, file_id: str) -> bytes:
        cid = self._mapping.read(file_id)
        return await self._run("cat", cid)

    async def forget(self, file_id: str) -> None:
        self._mapping.remove(file_id)
