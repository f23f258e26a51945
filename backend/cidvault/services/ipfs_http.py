"""IPFS storage through the daemon's HTTP API and gateway."""

from __future__ import annotations

import json
import logging

import httpx

from cidvault.services.storage_backend import CidMappingStore, StorageError

logger = logging.getLogger(__name__)


def parse_add_response(text: str) -> str:
    """Pull the CID out of an /api/v0/add response body.

    The daemon answers with one JSON object per line; the CID sits under the
    "Hash" key. Returns an empty string when no line carries it.
    """
    for line in text.splitlines():
        if '"Hash"' not in line:
            continue
        try:
            cid = json.loads(line).get("Hash", "")
        except (json.JSONDecodeError, AttributeError):
            # Fall back to the raw `"Hash":"<cid>"` layout
            parts = line.split('"')
            cid = parts[3] if len(parts) > 3 else ""
        if isinstance(cid, str) and cid:
            return cid
    return ""


class IpfsHttpStorage:
    """Posts payloads to /api/v0/add and reads them back from the gateway."""

    def __init__(
        self,
        mapping: CidMappingStore,
        api_url: str = "http://127.0.0.1:5001",
        gateway_url: str = "http://127.0.0.1:5000",
        timeout: float = 30.0,
    ):
        self._mapping = mapping
        self._api_url = api_url.rstrip("/")
        self._gateway_url = gateway_url.rstrip("/")
        self._timeout = timeout

    async def store(self, file_id: str, data: bytes) -> str:
        self._mapping.path_for(file_id)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(
                    f"{self._api_url}/api/v0/add",
                    params={"pin": "true", "wrap-with-directory": "false"},
                    files={"file": (file_id, data, "application/octet-stream")},
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StorageError(f"IPFS POST failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"IPFS POST failed: {e}") from e

        cid = parse_add_response(resp.text)
        if not cid:
            raise StorageError("IPFS add response carried no Hash")

        self._mapping.write(file_id, cid)
        logger.info("Stored %s via ipfs HTTP API: %s (%d bytes)", file_id, cid, len(data))
        return cid

    async def retrieve(self, file_id: str) -> bytes:
        cid = self._mapping.read(file_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(f"{self._gateway_url}/ipfs/{cid}")
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPStatusError as e:
            raise StorageError(f"IPFS gateway returned HTTP {e.response.status_code} for {cid}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"IPFS gateway request failed: {e}") from e

    async def forget(self, file_id: str) -> None:
        self._mapping.remove(file_id)
