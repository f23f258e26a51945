"""Health check."""

from fastapi import APIRouter

from cidvault import __version__
from cidvault.config import settings
from cidvault.schemas.system import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Lightweight connectivity check."""
    return HealthResponse(version=__version__, storage_backend=settings.storage_backend)


@router.get("/ping")
async def ping():
    """Ultra-lightweight ping."""
    return {"status": "ok"}
