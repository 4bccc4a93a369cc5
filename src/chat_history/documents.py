"""Stored document decoding

保存済みJSONドキュメントを Conversation / UnrecognizedDocument の
タグ付きユニオンに変換する。フィールドの有無チェックはこのモジュールに閉じる。
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from .exceptions import StorageUnavailableError
from .models import Conversation, Message


@dataclass(slots=True)
class UnrecognizedDocument:
    """形式を判別できなかったドキュメント"""

    key: str
    raw: Any
    reason: str


StoredDocument = Union[Conversation, UnrecognizedDocument]


def parse_document(key: str, text: str) -> StoredDocument:
    """ドキュメント文字列をデコード

    Args:
        key: ストア上のキー
        text: JSON文字列

    Returns:
        Conversation、または形式不明の場合UnrecognizedDocument

    Raises:
        StorageUnavailableError: JSONとして不正な場合
    """
    try:
        raw = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise StorageUnavailableError(f"Malformed document {key!r}: {exc}") from exc

    if not isinstance(raw, dict):
        return UnrecognizedDocument(key, raw, "document is not an object")

    for name, expected in (("id", str), ("userId", str), ("tool", str)):
        if not isinstance(raw.get(name), expected):
            return UnrecognizedDocument(key, raw, f"missing or invalid '{name}'")

    timestamp = raw.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, int):
        return UnrecognizedDocument(key, raw, "missing or invalid 'timestamp'")

    raw_messages = raw.get("messages")
    if not isinstance(raw_messages, list) or not raw_messages:
        return UnrecognizedDocument(key, raw, "missing or empty 'messages'")

    messages = []
    for index, item in enumerate(raw_messages):
        if not isinstance(item, dict) or not isinstance(item.get("content"), str):
            return UnrecognizedDocument(key, raw, f"invalid message at index {index}")
        try:
            messages.append(Message.from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            return UnrecognizedDocument(
                key, raw, f"invalid message at index {index}: {exc}"
            )

    return Conversation(
        id=raw["id"],
        user_id=raw["userId"],
        tool=raw["tool"],
        timestamp=timestamp,
        messages=messages,
    )
