"""Tests for the ipfs CLI backend: subprocess invocation, failures, timeouts."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cidvault.services.ipfs_cli import IpfsCliStorage
from cidvault.services.storage_backend import CidMappingStore, StorageError


def _proc(stdout=b"", stderr=b"", returncode=0):
    proc = MagicMock()
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.returncode = returncode
    proc.kill = MagicMock()
    proc.wait = AsyncMock()
    return proc


@pytest.fixture
def mapping(tmp_path):
    return CidMappingStore(tmp_path / "cids")


@pytest.fixture
def storage(tmp_path, mapping):
    return IpfsCliStorage(mapping=mapping, scratch_dir=tmp_path / "scratch", timeout=0.05)


class TestStore:
    @pytest.mark.asyncio
    @patch("cidvault.services.ipfs_cli.asyncio.create_subprocess_exec")
    async def test_store_adds_and_pins(self, mock_exec, storage, mapping, tmp_path):
        mock_exec.return_value = _proc(stdout=b"QmStoredCid\n")

        cid = await storage.store("file_1", b"hello")

        assert cid == "QmStoredCid"
        assert mapping.read("file_1") == "QmStoredCid"
        args = mock_exec.call_args.args
        assert args[:4] == ("ipfs", "add", "--pin", "-Q")
        assert args[4] == str(tmp_path / "scratch" / "file_1.bin")
        # Scratch file is cleaned up
        assert not (tmp_path / "scratch" / "file_1.bin").exists()

    @pytest.mark.asyncio
    @patch("cidvault.services.ipfs_cli.asyncio.create_subprocess_exec")
    async def test_nonzero_exit(self, mock_exec, storage, mapping):
        mock_exec.return_value = _proc(stderr=b"daemon not running", returncode=1)

        with pytest.raises(StorageError, match="daemon not running"):
            await storage.store("file_1", b"hello")
        with pytest.raises(StorageError):
            mapping.read("file_1")

    @pytest.mark.asyncio
    @patch("cidvault.services.ipfs_cli.asyncio.create_subprocess_exec")
    async def test_empty_cid(self, mock_exec, storage):
        mock_exec.return_value = _proc(stdout=b"\n")
        with pytest.raises(StorageError, match="no CID"):
            await storage.store("file_1", b"hello")

    @pytest.mark.asyncio
    @patch(
        "cidvault.services.ipfs_cli.asyncio.create_subprocess_exec",
        side_effect=FileNotFoundError("ipfs"),
    )
    async def test_missing_binary(self, mock_exec, storage):
        with pytest.raises(StorageError, match="not found"):
            await storage.store("file_1", b"hello")

    @pytest.mark.asyncio
    @patch("cidvault.services.ipfs_cli.asyncio.create_subprocess_exec")
    async def test_timeout_kills_process(self, mock_exec, storage):
        async def _hang():
            await asyncio.sleep(10)

        proc = _proc()
        proc.communicate = AsyncMock(side_effect=_hang)
        mock_exec.return_value = proc

        with pytest.raises(StorageError, match="timed out"):
            await storage.store("file_1", b"hello")
        proc.kill.assert_called_once()


class TestRetrieve:
    @pytest.mark.asyncio
    @patch("cidvault.services.ipfs_cli.asyncio.create_subprocess_exec")
    async def test_retrieve_cats_cid(self, mock_exec, storage, mapping):
        mapping.write("file_1", "QmStoredCid")
        mock_exec.return_value = _proc(stdout=b"hello")

        assert await storage.retrieve("file_1") == b"hello"
        assert mock_exec.call_args.args == ("ipfs", "cat", "QmStoredCid")

    @pytest.mark.asyncio
    @patch("cidvault.services.ipfs_cli.asyncio.create_subprocess_exec")
    async def test_retrieve_without_mapping(self, mock_exec, storage):
        with pytest.raises(StorageError, match="CID not found"):
            await storage.retrieve("file_404")
        mock_exec.assert_not_called()

    @pytest.mark.asyncio
    async def test_forget(self, storage, mapping):
        mapping.write("file_1", "QmStoredCid")
        await storage.forget("file_1")
        with pytest.raises(StorageError):
            mapping.read("file_1")
