"""Request and response schemas for the chat API.

Field names on the wire are camelCase (sessionId, retryAfter) to match the
web client.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from support_chat.core.message import Sender


class ChatRequest(BaseModel):
    """Request body for sending a chat message.

    The message is typed loosely on purpose: its checks run in the route so
    every failure gets the same 400 body instead of FastAPI's 422.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: Any = Field(default=None, description="Customer message text")
    session_id: str | None = Field(default=None, alias="sessionId", description="Existing session ID")


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reply: str
    session_id: str = Field(..., serialization_alias="sessionId")


class HistoryMessage(BaseModel):
    sender: Sender
    text: str
    timestamp: str = Field(..., description="ISO 8601 creation timestamp")


class HistoryResponse(BaseModel):
    messages: list[HistoryMessage]
