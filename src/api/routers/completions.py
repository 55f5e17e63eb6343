"""Completion router: one streamed multi-model turn per request."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from api.exceptions import CompletionError
from api.routers.dependencies import get_caller, get_completion_service
from api.services.completion_service import CompletionService
from api.services.streaming import StreamingService
from database.conversation_store.exceptions import ConversationStoreError
from models.caller import Caller
from utils.logging import logger

router = APIRouter(prefix="/completions", tags=["completions"])


@router.post("", response_class=StreamingResponse)
async def create_completion(
    payload: Dict[str, Any] = Body(...),
    caller: Caller = Depends(get_caller),
    service: CompletionService = Depends(get_completion_service),
) -> StreamingResponse:
    """Run a completion turn and stream its chunks as server-sent events.

    Validation, ownership and access errors are returned as plain HTTP errors before
    the stream starts; failures of individual targets arrive inside the stream.
    """
    try:
        turn = await service.prepare(payload, caller)
    except CompletionError as e:
        logger.info(f"Completion rejected ({e.status_code}): {str(e)}")
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except ConversationStoreError as e:
        logger.error(f"Conversation store unavailable: {str(e)}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Conversation store unavailable")

    return StreamingResponse(
        StreamingService.to_sse(service.stream(turn)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
