"""File ledger API: one JSON command per request."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from cidvault.services import get_ledger
from cidvault.services.ledger import FILE_NOT_FOUND

router = APIRouter()


def _status_for(result: dict) -> int:
    """Map a ledger error result onto an HTTP status."""
    message = result.get("error")
    if not isinstance(message, str):
        return 200
    if message == FILE_NOT_FOUND:
        return 404
    if message.startswith("Storage backend failed"):
        return 502
    if message.startswith(("Ledger is corrupted", "Failed to persist ledger")):
        return 500
    return 400


@router.post("/command")
async def run_command(request: Request):
    """Apply an Upload/List/ListDeleted/Delete/Restore/empty_recycle_bin/Download command."""
    body = await request.body()
    result = await get_ledger().handle_action(body)
    return JSONResponse(result, status_code=_status_for(result))
