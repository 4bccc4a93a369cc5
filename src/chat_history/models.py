"""Chat History Models

会話履歴のデータモデル定義。
1会話 = 1ドキュメント（append毎に新規作成）。

Related Classes: ChatHistoryRepository (repository.py), parse_document (documents.py)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

DEFAULT_IMAGE_TOOLS = ("DALL-E", "Stable Diffusion")


class MessageRole(str, Enum):
    """発話者"""

    USER = "user"
    AI = "ai"


class MessageType(str, Enum):
    """メッセージの種別（imageの場合contentはbase64等の画像データ）"""

    TEXT = "text"
    IMAGE = "image"


class ToolCategory(str, Enum):
    """履歴一覧のグルーピング単位"""

    TEXT = "text"
    IMAGE = "image"


@dataclass(slots=True)
class Source:
    """引用元 {title, url}"""

    title: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "url": self.url}


@dataclass(slots=True)
class Message:
    """会話中の1ターン

    sourcesは引用が無い場合None。順序は生成元の順序を保持する。
    """

    role: MessageRole
    content: str
    type: MessageType = MessageType.TEXT
    sources: Optional[List[Source]] = None

    def to_dict(self) -> Dict[str, Any]:
        """ドキュメント保存用の辞書に変換（sourcesが無ければキーごと省略）"""
        data: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "type": self.type.value,
        }
        if self.sources is not None:
            data["sources"] = [source.to_dict() for source in self.sources]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """辞書からMessageを生成

        Raises:
            ValueError: role/typeが未知の値の場合
            KeyError: role/contentが欠けている場合
        """
        sources = data.get("sources")
        return cls(
            role=MessageRole(data["role"]),
            content=data["content"],
            type=MessageType(data.get("type") or MessageType.TEXT.value),
            sources=[Source(title=s["title"], url=s["url"]) for s in sources]
            if sources is not None
            else None,
        )


@dataclass(slots=True)
class Conversation:
    """1会話の永続化単位

    id は "{user_id}/{tool}_{timestamp}_{suffix}" 形式で、作成後は変更されない。
    timestamp はミリ秒単位のエポック時刻で、一覧のソートキー。
    """

    id: str
    user_id: str
    tool: str
    timestamp: int
    messages: List[Message] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        """保存用ドキュメント（camelCaseキー）に変換"""
        return {
            "id": self.id,
            "userId": self.user_id,
            "tool": self.tool,
            "messages": [message.to_dict() for message in self.messages],
            "timestamp": self.timestamp,
        }


def tool_category(
    tool: str, image_tools: Iterable[str] = DEFAULT_IMAGE_TOOLS
) -> ToolCategory:
    """ツール名から画像系/テキスト系を判定"""
    return ToolCategory.IMAGE if tool in set(image_tools) else ToolCategory.TEXT


def group_by_category(
    conversations: Sequence[Conversation],
    image_tools: Iterable[str] = DEFAULT_IMAGE_TOOLS,
) -> Dict[str, List[Conversation]]:
    """会話一覧を text / image に振り分ける（各グループ内の順序は維持）"""
    image_set = set(image_tools)
    grouped: Dict[str, List[Conversation]] = {
        ToolCategory.TEXT.value: [],
        ToolCategory.IMAGE.value: [],
    }
    for conversation in conversations:
        category = tool_category(conversation.tool, image_set)
        grouped[category.value].append(conversation)
    return grouped
