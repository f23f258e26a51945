"""Test fixtures: temp-dir ledger and FastAPI test client."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cidvault import services
from cidvault.main import create_app
from cidvault.services.ledger import Ledger


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "metadata.json"


@pytest.fixture
def ledger(ledger_path):
    """Ledger on a temp file with no storage backend."""
    return Ledger(path=ledger_path, enforce_owner_on_mutation=False)


@pytest_asyncio.fixture
async def client(ledger, monkeypatch):
    """Provide an async test client wired to the temp ledger."""
    monkeypatch.setattr(services, "_ledger", ledger)
    monkeypatch.setattr(services, "_storage_backend", None)
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
