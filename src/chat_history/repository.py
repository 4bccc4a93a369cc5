"""Chat History Repository

会話履歴ドキュメントのCRUD操作を提供するリポジトリクラス。
SQLiteの1テーブルをキー/ドキュメント名前空間として使用する。

Related Classes: Conversation (models.py), parse_document (documents.py)
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from .documents import UnrecognizedDocument, parse_document
from .exceptions import InvalidArgumentError, NotFoundError, StorageUnavailableError
from .models import DEFAULT_IMAGE_TOOLS, Conversation, Message, group_by_category

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
# SQLite INTEGERの上限
MAX_TIMESTAMP = 2**63 - 1

MessageInput = Union[Message, Dict[str, Any]]


class ChatHistoryRepository:
    """SQLiteベースの会話履歴管理。1会話 = 1ドキュメント。"""

    def __init__(self, db_path: Optional[Path] = None):
        root = Path(__file__).resolve().parents[2]
        default_path = root / "data" / "history.db"
        env_path = os.getenv("HISTORY_DB_PATH")
        if db_path:
            self.db_path = Path(db_path)
        elif env_path:
            self.db_path = Path(env_path)
        else:
            self.db_path = default_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        """接続を開いてトランザクションを実行し、sqlite3のエラーを変換する"""
        try:
            conn = self._connect()
            try:
                with conn:
                    yield conn
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Failed to {action}: {exc}") from exc

    def _initialize(self) -> None:
        """conversationsテーブルの初期化"""
        with self._transaction("initialize history store") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    key TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    tool TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    document TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_user_ts "
                "ON conversations(user_id, timestamp DESC)"
            )

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    @staticmethod
    def _build_id(user_id: str, tool: str, timestamp: int) -> str:
        # 同一ミリ秒の衝突を避けるため乱数サフィックスを付与
        return f"{user_id}/{tool}_{timestamp}_{uuid.uuid4().hex[:8]}"

    @staticmethod
    def _coerce_messages(messages: Sequence[MessageInput]) -> List[Message]:
        result = []
        for index, message in enumerate(messages):
            if isinstance(message, Message):
                result.append(message)
                continue
            try:
                result.append(Message.from_dict(message))
            except (KeyError, TypeError, ValueError) as exc:
                raise InvalidArgumentError(
                    f"Invalid message at index {index}: {exc}"
                ) from exc
        return result

    def append(
        self,
        user_id: str,
        tool: str,
        messages: Sequence[MessageInput],
        timestamp: Optional[int] = None,
    ) -> str:
        """会話ドキュメントを新規作成

        Args:
            user_id: ユーザーID
            tool: 使用した生成ツール名
            messages: メッセージ配列（1件以上）
            timestamp: 作成時刻（ミリ秒）。省略時は現在時刻

        Returns:
            作成された会話のID

        Raises:
            InvalidArgumentError: user_id/tool/messagesが空、またはメッセージが不正な場合
            StorageUnavailableError: ストアへの書き込みに失敗した場合
        """
        if not user_id:
            raise InvalidArgumentError("userId is required")
        if not tool:
            raise InvalidArgumentError("tool is required")
        if not messages:
            raise InvalidArgumentError("messages must not be empty")
        if timestamp is None:
            timestamp = self._now_ms()
        elif isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise InvalidArgumentError("timestamp must be an integer (ms since epoch)")
        elif not 0 <= timestamp <= MAX_TIMESTAMP:
            raise InvalidArgumentError(
                f"timestamp must be between 0 and {MAX_TIMESTAMP}"
            )

        conversation = Conversation(
            id=self._build_id(user_id, tool, timestamp),
            user_id=user_id,
            tool=tool,
            timestamp=timestamp,
            messages=self._coerce_messages(messages),
        )
        document = json.dumps(conversation.to_document(), ensure_ascii=False)

        with self._transaction("save conversation") as conn:
            conn.execute(
                """
                INSERT INTO conversations (key, user_id, tool, timestamp, document)
                VALUES (?, ?, ?, ?, ?)
                """,
                (conversation.id, user_id, tool, timestamp, document),
            )
        logger.info(
            "Conversation saved: %s (%d messages)",
            conversation.id,
            len(conversation.messages),
        )
        return conversation.id

    def get(self, conversation_id: str) -> Optional[Conversation]:
        """IDで会話を取得

        Returns:
            Conversation、存在しない・形式不明の場合はNone
        """
        with self._transaction("fetch conversation") as conn:
            row = conn.execute(
                "SELECT key, document FROM conversations WHERE key = ?",
                (conversation_id,),
            ).fetchone()
        if row is None:
            return None
        parsed = parse_document(row["key"], row["document"])
        if isinstance(parsed, UnrecognizedDocument):
            logger.warning("Unrecognized document %s: %s", parsed.key, parsed.reason)
            return None
        return parsed

    def list(self, user_id: str, limit: int = DEFAULT_LIMIT) -> List[Conversation]:
        """ユーザーの会話一覧を取得（新しい順）

        Args:
            user_id: ユーザーID
            limit: 取得する最大件数

        Returns:
            Conversationのリスト。履歴が無い場合は空リスト
            スキップしたドキュメントは件数に含めない

        Raises:
            InvalidArgumentError: user_idが空、またはlimitが1未満の場合
            StorageUnavailableError: 読み込みに失敗した場合
        """
        if not user_id:
            raise InvalidArgumentError("userId is required")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidArgumentError("limit must be a positive integer")

        conversations = []
        with self._transaction("fetch history") as conn:
            cursor = conn.execute(
                """
                SELECT key, document FROM conversations
                WHERE user_id = ?
                ORDER BY timestamp DESC, key ASC
                """,
                (user_id,),
            )
            for row in cursor:
                parsed = parse_document(row["key"], row["document"])
                if isinstance(parsed, UnrecognizedDocument):
                    logger.warning(
                        "Skipping unrecognized document %s: %s", parsed.key, parsed.reason
                    )
                    continue
                if parsed.user_id != user_id:
                    logger.warning(
                        "Skipping document %s owned by another user", row["key"]
                    )
                    continue
                conversations.append(parsed)
                if len(conversations) >= limit:
                    break
        return conversations

    def list_grouped(
        self,
        user_id: str,
        limit: int = DEFAULT_LIMIT,
        image_tools: Iterable[str] = DEFAULT_IMAGE_TOOLS,
    ) -> Dict[str, List[Conversation]]:
        """会話一覧を text / image に振り分けて取得"""
        return group_by_category(self.list(user_id, limit), image_tools)

    def delete(self, conversation_id: str, user_id: str) -> None:
        """会話を削除（所有者が一致する場合のみ）

        Args:
            conversation_id: 会話ID
            user_id: 所有者のユーザーID

        Raises:
            InvalidArgumentError: conversation_id/user_idが空の場合
            NotFoundError: 該当する会話が存在しない、または所有者が異なる場合
            StorageUnavailableError: 削除に失敗した場合
        """
        if not conversation_id:
            raise InvalidArgumentError("id is required")
        if not user_id:
            raise InvalidArgumentError("userId is required")

        with self._transaction("delete conversation") as conn:
            cursor = conn.execute(
                "DELETE FROM conversations WHERE key = ? AND user_id = ?",
                (conversation_id, user_id),
            )
            deleted = cursor.rowcount

        if not deleted:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        logger.info("Conversation deleted: %s", conversation_id)
