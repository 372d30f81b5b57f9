import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from support_chat.api.dependencies import ChatServices, get_client_ip, get_services
from support_chat.api.schemas import ChatRequest, ChatResponse, HistoryMessage, HistoryResponse
from support_chat.api.validation import validate_chat_message
from support_chat.core.errors import ChatMemoryError
from support_chat.core.turn_orchestrator import StreamEvent

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _event_payload(event: StreamEvent) -> dict:
    return {"type": event.kind, "text": event.text, "sessionId": event.session_id}


def _admit(request: Request, req: ChatRequest, services: ChatServices) -> str:
    services.rate_limiter.check(get_client_ip(request), req.session_id)
    return validate_chat_message(req.message, services.settings.max_message_length)


@router.post("/message", response_model=ChatResponse, response_model_by_alias=True)
async def send_message(
    request: Request,
    req: ChatRequest,
    services: ChatServices = Depends(get_services),
) -> ChatResponse:
    """Send a customer message and return the agent reply."""
    message = _admit(request, req, services)
    logger.info("chat_message_received", session_id=req.session_id, message_chars=len(message))

    result = await services.orchestrator.handle_turn(message, req.session_id)
    return ChatResponse(reply=result.reply, session_id=result.session_id)


@router.post("/stream")
async def stream_message(
    request: Request,
    req: ChatRequest,
    services: ChatServices = Depends(get_services),
) -> StreamingResponse:
    """Send a customer message and stream the agent reply as server-sent events."""
    message = _admit(request, req, services)
    logger.info("chat_stream_received", session_id=req.session_id, message_chars=len(message))

    events = services.orchestrator.stream_turn(message, req.session_id)
    # Pull the first event here so store failures before any output become
    # a normal error response instead of a broken stream.
    first = await anext(events)

    async def event_stream() -> AsyncIterator[str]:
        try:
            yield _sse(_event_payload(first))
            async for event in events:
                yield _sse(_event_payload(event))
        except ChatMemoryError as e:
            logger.error(f"Chat stream failed: {e}")
            yield _sse({"type": "error", "message": "An unexpected error occurred. Please try again later."})
        finally:
            await events.aclose()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/history/{session_id}", response_model=HistoryResponse)
def get_history(session_id: str, services: ChatServices = Depends(get_services)) -> HistoryResponse:
    """Return the full message history of a session, oldest first."""
    messages = services.orchestrator.get_history(session_id)
    return HistoryResponse(
        messages=[
            HistoryMessage(sender=msg.sender, text=msg.text, timestamp=msg.created_at.isoformat())
            for msg in messages
        ]
    )
