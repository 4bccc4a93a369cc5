"""Dependency helpers shared across FastAPI routes."""

from __future__ import annotations

from typing import List

from fastapi import Request

from src.chat_history import ChatHistoryRepository, Conversation, Message
from src.history_service.config import Config

from .schemas import ConversationResponse, MessageSchema, SourceSchema


def get_history_repository(request: Request) -> ChatHistoryRepository:
    """Return the repository constructed by create_app."""
    return request.app.state.history_repository


def get_config(request: Request) -> Config:
    """Return the configuration the app was built with."""
    return request.app.state.config


def to_domain_messages(messages: List[MessageSchema]) -> List[Message]:
    """Convert request message schemas to domain messages."""
    return [
        Message.from_dict(message.model_dump(mode="json", exclude_none=True))
        for message in messages
    ]


def serialize_conversation(conversation: Conversation) -> ConversationResponse:
    """Convert a Conversation dataclass to the API model."""
    return ConversationResponse(
        id=conversation.id,
        user_id=conversation.user_id,
        tool=conversation.tool,
        timestamp=conversation.timestamp,
        messages=[
            MessageSchema(
                role=message.role,
                content=message.content,
                type=message.type,
                sources=[
                    SourceSchema(title=source.title, url=source.url)
                    for source in message.sources
                ]
                if message.sources is not None
                else None,
            )
            for message in conversation.messages
        ],
    )
