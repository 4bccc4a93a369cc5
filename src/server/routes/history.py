"""History endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query

from src.chat_history import (
    ChatHistoryRepository,
    InvalidArgumentError,
    NotFoundError,
    StorageUnavailableError,
)
from src.history_service.config import Config

from ..dependencies import (
    get_config,
    get_history_repository,
    serialize_conversation,
    to_domain_messages,
)
from ..schemas import (
    DeleteConversationRequest,
    GroupedHistoryResponse,
    HistoryListResponse,
    MessageResponse,
    SaveConversationRequest,
    SaveConversationResponse,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, details: Optional[str] = None) -> HTTPException:
    detail = {"error": error}
    if details:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


def register_history_routes(app: FastAPI) -> None:
    """Register conversation history endpoints."""

    @app.get(
        "/history",
        response_model=Union[HistoryListResponse, GroupedHistoryResponse],
        response_model_exclude_none=True,
    )
    async def list_history(
        firebase_user_id: Optional[str] = Query(default=None, alias="firebaseUserId"),
        limit: Optional[int] = Query(default=None),
        repo: ChatHistoryRepository = Depends(get_history_repository),
        config: Config = Depends(get_config),
    ) -> Union[HistoryListResponse, GroupedHistoryResponse]:
        """List a user's conversations, newest first."""
        if not firebase_user_id:
            raise _error(400, "User ID is required")
        if limit is None:
            limit = config.history.default_limit
        try:
            if config.history.response_layout == "grouped":
                grouped = await asyncio.to_thread(
                    repo.list_grouped,
                    firebase_user_id,
                    limit,
                    config.history.image_tools,
                )
                return GroupedHistoryResponse(
                    text=[serialize_conversation(c) for c in grouped["text"]],
                    image=[serialize_conversation(c) for c in grouped["image"]],
                )
            conversations = await asyncio.to_thread(repo.list, firebase_user_id, limit)
            return HistoryListResponse(
                results=[serialize_conversation(c) for c in conversations]
            )
        except InvalidArgumentError as exc:
            raise _error(400, "Invalid request", str(exc)) from exc
        except StorageUnavailableError as exc:
            logger.exception("Failed to fetch history for %s: %s", firebase_user_id, exc)
            raise _error(500, "Failed to fetch history", str(exc)) from exc

    @app.post("/history", response_model=SaveConversationResponse)
    async def save_history(
        request: SaveConversationRequest,
        repo: ChatHistoryRepository = Depends(get_history_repository),
    ) -> SaveConversationResponse:
        """Persist a conversation as a new document."""
        logger.info(
            "Saving conversation: user=%s tool=%s messages=%d",
            request.user_id,
            request.tool,
            len(request.messages),
        )
        try:
            conversation_id = await asyncio.to_thread(
                repo.append,
                request.user_id,
                request.tool,
                to_domain_messages(request.messages),
                request.timestamp,
            )
            return SaveConversationResponse(
                message="Conversation saved successfully", id=conversation_id
            )
        except InvalidArgumentError as exc:
            raise _error(400, "Invalid request", str(exc)) from exc
        except StorageUnavailableError as exc:
            logger.exception("Failed to save conversation: %s", exc)
            raise _error(500, "Failed to save conversation", str(exc)) from exc

    @app.delete("/history", response_model=MessageResponse)
    async def delete_history(
        request: DeleteConversationRequest,
        repo: ChatHistoryRepository = Depends(get_history_repository),
    ) -> MessageResponse:
        """Permanently delete a conversation."""
        if not request.id:
            raise _error(400, "Conversation ID is required")
        if not request.user_id:
            raise _error(400, "User ID is required")
        try:
            await asyncio.to_thread(repo.delete, request.id, request.user_id)
            return MessageResponse(message="Conversation deleted successfully")
        except NotFoundError as exc:
            logger.info("No conversation found with id: %s", request.id)
            raise _error(404, "Conversation not found", str(exc)) from exc
        except StorageUnavailableError as exc:
            logger.exception("Failed to delete conversation %s: %s", request.id, exc)
            raise _error(500, "Failed to delete conversation", str(exc)) from exc
