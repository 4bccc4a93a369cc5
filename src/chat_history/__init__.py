"""Chat History Management

会話履歴の永続化と取得を提供します。
"""

from .documents import UnrecognizedDocument, parse_document
from .exceptions import (
    HistoryError,
    InvalidArgumentError,
    NotFoundError,
    StorageUnavailableError,
)
from .models import (
    Conversation,
    Message,
    MessageRole,
    MessageType,
    Source,
    ToolCategory,
    group_by_category,
    tool_category,
)
from .repository import DEFAULT_LIMIT, ChatHistoryRepository

__all__ = [
    "ChatHistoryRepository",
    "Conversation",
    "DEFAULT_LIMIT",
    "HistoryError",
    "InvalidArgumentError",
    "Message",
    "MessageRole",
    "MessageType",
    "NotFoundError",
    "Source",
    "StorageUnavailableError",
    "ToolCategory",
    "UnrecognizedDocument",
    "group_by_category",
    "parse_document",
    "tool_category",
]
