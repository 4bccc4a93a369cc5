"""Pydantic schemas for the history HTTP API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.chat_history import MessageRole, MessageType


class SourceSchema(BaseModel):
    """Citation attached to a text message."""

    title: str
    url: str


class MessageSchema(BaseModel):
    """One conversation turn."""

    role: MessageRole
    content: str
    type: MessageType = Field(default=MessageType.TEXT)
    sources: Optional[List[SourceSchema]] = None


class SaveConversationRequest(BaseModel):
    """Request body for saving a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(default="", alias="userId", description="Authenticated user id")
    tool: str = Field(default="", description="Generation tool used for the conversation")
    messages: List[MessageSchema] = Field(default_factory=list)
    timestamp: Optional[int] = Field(
        default=None, description="Creation time in ms since epoch (defaults to now)"
    )


class SaveConversationResponse(BaseModel):
    """Response body for a saved conversation."""

    message: str
    id: str


class DeleteConversationRequest(BaseModel):
    """Request body for deleting a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="", description="Conversation id returned on save")
    user_id: str = Field(
        default="", alias="userId", description="Owner id; must match the conversation owner"
    )


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


class ConversationResponse(BaseModel):
    """Serialized conversation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(..., alias="userId")
    tool: str
    messages: List[MessageSchema]
    timestamp: int


class HistoryListResponse(BaseModel):
    """Flat listing, newest first."""

    results: List[ConversationResponse]


class GroupedHistoryResponse(BaseModel):
    """Listing split by tool category, each newest first."""

    text: List[ConversationResponse]
    image: List[ConversationResponse]


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str
