"""
Advisor HTTP routes.

POST /api/advisor/chat                              stream an answer (SSE)
POST /api/advisor/conversations/{id}/retry          answer the last unanswered turn (SSE)
GET  /api/advisor/conversations                     the caller's conversations
GET  /api/advisor/conversations/{id}/messages       ordered message log

SSE events are single ``data:`` lines carrying JSON:
    {"type": "text", "content": "..."}
    {"type": "done", "conversation_id": "...", "specialist_type": ...}
    {"type": "error", "message": "..."}
"""

import asyncio
import json
from contextlib import aclosing
from loguru import logger
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from advisor.errors import (
    AdvisorError,
    ConversationNotFound,
    NothingToRetry,
    PersistenceError,
    UpstreamGenerationError,
)
from advisor.orchestrator import AdvisorOrchestrator, ConversationState, conversation_state
from advisor.streaming import CancellationToken
from api.models import ChatRequest, RetryRequest
from infrastructure.config import CONVERSATION_LIST_LIMIT, HISTORY_LIMIT
from memory.schemas import Conversation

router = APIRouter(prefix="/api/advisor")

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
_DISCONNECT_POLL_SECONDS = 0.5


# dependencies


def get_advisor(request: Request) -> AdvisorOrchestrator:
    return request.app.state.advisor


def get_current_user(authorization: Optional[str] = Header(default=None)) -> str:
    """Resolve ``Authorization: Bearer <token>`` to a user id via Supabase Auth."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    from infrastructure.db.supabase_client import resolve_user_id

    user_id = resolve_user_id(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


async def _owned_conversation(
    advisor: AdvisorOrchestrator, conversation_id: str, user_id: str
) -> Conversation:
    try:
        return await advisor.owned_conversation(user_id, conversation_id)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")


# SSE helpers


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            token.cancel("client disconnected")
            return
        await asyncio.sleep(_DISCONNECT_POLL_SECONDS)


def _error_message(exc: Exception) -> str:
    if isinstance(exc, UpstreamGenerationError):
        return "Yuri couldn't finish this answer. Please try again."
    if isinstance(exc, NothingToRetry):
        return "Nothing to retry"
    if isinstance(exc, PersistenceError):
        return "Your conversation couldn't be saved. Please try again."
    if isinstance(exc, AdvisorError):
        return str(exc)
    return "Stream error"


async def _event_stream(
    request: Request,
    deltas: AsyncIterator[str],
    token: CancellationToken,
    conversation_id: str,
    specialist: Optional[str],
) -> AsyncIterator[str]:
    watcher = asyncio.create_task(_watch_disconnect(request, token))
    log = logger.bind(conversation_id=conversation_id)
    try:
        async with aclosing(deltas) as stream:
            async for delta in stream:
                yield _sse({"type": "text", "content": delta})
        if token.cancelled:
            return
        yield _sse({
            "type": "done",
            "conversation_id": conversation_id,
            "specialist_type": specialist,
        })
    except Exception as e:
        log.error("Advisor stream failed: {}", e)
        yield _sse({"type": "error", "message": _error_message(e)})
    finally:
        watcher.cancel()


# routes


@router.post("/chat")
async def chat(
    body: ChatRequest,
    request: Request,
    user_id: str = Depends(get_current_user),
    advisor: AdvisorOrchestrator = Depends(get_advisor),
):
    """Send a message to the advisor and receive the answer as SSE."""
    if body.conversation_id is not None:
        conversation = await _owned_conversation(advisor, str(body.conversation_id), user_id)
    else:
        conversation = await asyncio.to_thread(
            advisor.store.create_conversation, user_id, body.specialist_type,
        )

    requested = body.requested_specialist(pinned=conversation.specialist_type)
    specialist = advisor.resolve_specialist(body.message, requested)
    token = CancellationToken()

    deltas = advisor.stream_response(
        user_id=user_id,
        conversation_id=conversation.id,
        message=body.message,
        image_urls=body.image_urls,
        history=None,
        requested_specialist=specialist,
        cancel_token=token,
    )
    return StreamingResponse(
        _event_stream(request, deltas, token, conversation.id, specialist),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.post("/conversations/{conversation_id}/retry")
async def retry(
    conversation_id: str,
    request: Request,
    body: Optional[RetryRequest] = None,
    user_id: str = Depends(get_current_user),
    advisor: AdvisorOrchestrator = Depends(get_advisor),
):
    """Regenerate the answer for a conversation whose last turn went unanswered."""
    conversation = await _owned_conversation(advisor, conversation_id, user_id)
    messages = await asyncio.to_thread(advisor.store.load_messages, conversation.id, HISTORY_LIMIT)
    if conversation_state(conversation, messages) is not ConversationState.AWAITING_ANSWER:
        raise HTTPException(status_code=409, detail="Nothing to retry")

    body = body or RetryRequest()
    requested = body.requested_specialist(pinned=conversation.specialist_type)
    specialist = advisor.resolve_specialist(messages[-1].content, requested)
    token = CancellationToken()

    deltas = advisor.retry_response(
        user_id=user_id,
        conversation_id=conversation.id,
        requested_specialist=specialist,
        cancel_token=token,
    )
    return StreamingResponse(
        _event_stream(request, deltas, token, conversation.id, specialist),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.get("/conversations")
async def list_conversations(
    limit: int = Query(default=CONVERSATION_LIST_LIMIT, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    advisor: AdvisorOrchestrator = Depends(get_advisor),
):
    conversations = await asyncio.to_thread(advisor.store.list_conversations, user_id, limit)
    return {"conversations": [c.to_dict() for c in conversations]}


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: str,
    limit: int = Query(default=HISTORY_LIMIT, ge=1, le=200),
    user_id: str = Depends(get_current_user),
    advisor: AdvisorOrchestrator = Depends(get_advisor),
):
    conversation = await _owned_conversation(advisor, conversation_id, user_id)
    messages = await asyncio.to_thread(advisor.store.load_messages, conversation.id, limit)
    return {
        "conversation": conversation.to_dict(),
        "state": conversation_state(conversation, messages).value,
        "messages": [m.to_dict() for m in messages],
    }
