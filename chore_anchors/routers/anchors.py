from typing import Any, List

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from chore_anchors.dependencies.auth import require_api_token
from chore_anchors.logging_config import get_logger
from chore_anchors.models.anchor import AnchorRecord
from chore_anchors.services.file_store import AnchorFileStore

logger = get_logger(__name__)

router = APIRouter(prefix="/anchors", tags=["anchors"], dependencies=[Depends(require_api_token)])


def get_file_store(request: Request) -> AnchorFileStore:
    return request.app.state.file_store


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("")
async def get_anchors(store: AnchorFileStore = Depends(get_file_store)) -> List[Any]:
    """Return every stored anchor"""
    return store.load()


@router.post("")
async def replace_anchors(request: Request, store: AnchorFileStore = Depends(get_file_store)):
    """Replace the whole anchor set"""
    try:
        anchors = await request.json()
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, "Request body must be JSON")

    if not isinstance(anchors, list):
        return _error(status.HTTP_400_BAD_REQUEST, "Expected an array of anchors")

    try:
        records = [AnchorRecord.model_validate(item) for item in anchors]
    except ValidationError as e:
        logger.warning("Rejected anchor payload: %s", e)
        return _error(status.HTTP_400_BAD_REQUEST, f"Invalid anchor: {e.errors()[0]['msg']}")

    try:
        store.save([record.to_json_dict() for record in records])
    except OSError as e:
        logger.error("Error saving anchors: %s", e)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to save anchors")

    return {"success": True}
