"""
Conversation endpoints.

POST /api/messages runs the orchestration loop to completion before
responding; intermediate messages reach observers over the event channel.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ...context import GatewayContext
from ...errors import BackendError
from ..deps import get_context
from ..schemas import SendMessageRequest, SendMessageResponse, StatusResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/messages", summary="List messages")
def list_messages(context: GatewayContext = Depends(get_context)) -> list[dict]:
    return context.messages.to_json()


@router.post(
    "/api/messages",
    response_model=SendMessageResponse,
    responses={502: {"description": "Model backend failure"}},
    summary="Send a message",
    description=(
        "Append a user message and drive the model through tool-calling turns "
        "until it produces a final answer."
    ),
)
def send_message(
    request: SendMessageRequest,
    context: GatewayContext = Depends(get_context),
) -> SendMessageResponse:
    try:
        result = context.send_message(request.message)
    except BackendError as e:
        logger.error(f"Model backend failed ({e.kind}): {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return SendMessageResponse(
        state=result.state.value,
        answer=result.answer,
        turns=result.turns,
        turnLimitReached=result.turn_limit_reached,
        toolsUsed=result.tools_used,
    )


@router.delete(
    "/api/messages",
    response_model=StatusResponse,
    summary="Clear the conversation",
    description="Empty the log; it is immediately re-seeded with the system prompt.",
)
def clear_messages(context: GatewayContext = Depends(get_context)) -> StatusResponse:
    context.clear_conversation()
    return StatusResponse()
