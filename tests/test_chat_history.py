"""Chat History Repository Unit Tests

ChatHistoryRepositoryの単体テスト
"""

import json
import sqlite3

import pytest

from src.chat_history.exceptions import (
    InvalidArgumentError,
    NotFoundError,
    StorageUnavailableError,
)
from src.chat_history.models import Message, MessageRole, MessageType, Source
from src.chat_history.repository import ChatHistoryRepository


@pytest.fixture
def test_db_path(tmp_path, monkeypatch):
    """テスト用の一時DBパス"""
    db_path = tmp_path / "test_history.db"
    monkeypatch.setenv("HISTORY_DB_PATH", str(db_path))
    return db_path


@pytest.fixture
def repo(test_db_path):
    """ChatHistoryRepositoryのインスタンス"""
    return ChatHistoryRepository(db_path=test_db_path)


def _count_rows(db_path) -> int:
    with sqlite3.connect(db_path) as conn:
        return conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]


def test_append_and_list(repo):
    """保存した会話が一覧に含まれる"""
    messages = [{"role": "user", "content": "a cat", "type": "text"}]

    conversation_id = repo.append("u1", "DALL-E", messages, timestamp=1000)

    results = repo.list("u1")
    assert len(results) == 1
    assert results[0].id == conversation_id
    assert results[0].user_id == "u1"
    assert results[0].tool == "DALL-E"
    assert results[0].timestamp == 1000
    assert [m.to_dict() for m in results[0].messages] == messages


def test_newer_conversation_listed_first(repo):
    """新しい会話が先頭に来る"""
    repo.append("u1", "DALL-E", [{"role": "user", "content": "a cat"}], timestamp=1000)
    second = repo.append(
        "u1", "DALL-E", [{"role": "user", "content": "a dog"}], timestamp=2000
    )

    results = repo.list("u1")

    assert len(results) == 2
    assert results[0].id == second
    assert results[0].messages[0].content == "a dog"


def test_list_sorted_regardless_of_insertion_order(repo):
    """挿入順に関係なくtimestamp降順"""
    for ts in (3000, 1000, 5000, 2000, 4000):
        repo.append("u1", "Groq", [{"role": "user", "content": str(ts)}], timestamp=ts)

    timestamps = [c.timestamp for c in repo.list("u1")]

    assert timestamps == [5000, 4000, 3000, 2000, 1000]


def test_list_is_partitioned_by_user(repo):
    """他ユーザーの会話は見えない"""
    repo.append("alice", "GPT-4", [{"role": "user", "content": "hi"}], timestamp=1)
    repo.append("bob", "GPT-4", [{"role": "user", "content": "hey"}], timestamp=2)
    # プレフィックスが重なるユーザーID
    repo.append("alice2", "GPT-4", [{"role": "user", "content": "yo"}], timestamp=3)

    results = repo.list("alice")

    assert len(results) == 1
    assert all(c.user_id == "alice" for c in results)


def test_list_empty_history(repo):
    """履歴が無い場合は空リスト"""
    assert repo.list("nobody") == []


def test_list_with_limit(repo):
    """件数制限"""
    for i in range(5):
        repo.append("u1", "Claude", [{"role": "user", "content": f"m{i}"}], timestamp=i)

    results = repo.list("u1", limit=3)

    assert [c.timestamp for c in results] == [4, 3, 2]


def test_list_rejects_invalid_arguments(repo):
    """user_id未指定・limit不正"""
    with pytest.raises(InvalidArgumentError):
        repo.list("")
    with pytest.raises(InvalidArgumentError):
        repo.list("u1", limit=0)


def test_same_millisecond_ids_do_not_collide(repo):
    """同一ミリ秒でもIDが衝突しない"""
    messages = [{"role": "user", "content": "same"}]
    first = repo.append("u1", "DALL-E", messages, timestamp=1000)
    second = repo.append("u1", "DALL-E", messages, timestamp=1000)

    assert first != second
    assert first.startswith("u1/DALL-E_1000_")
    assert len(repo.list("u1")) == 2


def test_append_defaults_timestamp_to_now(repo):
    """timestamp省略時は現在時刻（ミリ秒）"""
    repo.append("u1", "Perplexity", [{"role": "user", "content": "now"}])

    (conversation,) = repo.list("u1")
    assert conversation.timestamp > 1_600_000_000_000


def test_append_preserves_message_order_and_sources(repo):
    """メッセージ順序と引用元の保持"""
    messages = [
        Message(role=MessageRole.USER, content="What is Python?"),
        Message(
            role=MessageRole.AI,
            content="A programming language.",
            sources=[
                Source(title="Python", url="https://www.python.org"),
                Source(title="Wikipedia", url="https://en.wikipedia.org/wiki/Python"),
            ],
        ),
        Message(role=MessageRole.USER, content="Thanks"),
    ]

    repo.append("u1", "Perplexity", messages, timestamp=10)

    stored = repo.list("u1")[0].messages
    assert stored == messages
    assert stored[1].sources[1].url == "https://en.wikipedia.org/wiki/Python"


def test_append_image_message(repo):
    """画像メッセージの保存"""
    messages = [
        {"role": "user", "content": "a sunset", "type": "text"},
        {"role": "ai", "content": "iVBORw0KGgo=", "type": "image"},
    ]

    repo.append("u1", "Stable Diffusion", messages, timestamp=5)

    stored = repo.list("u1")[0].messages
    assert stored[1].type is MessageType.IMAGE
    assert stored[1].sources is None


@pytest.mark.parametrize(
    "user_id, tool, messages",
    [
        ("", "DALL-E", [{"role": "user", "content": "x"}]),
        ("u1", "", [{"role": "user", "content": "x"}]),
        ("u1", "DALL-E", []),
        ("u1", "DALL-E", [{"role": "robot", "content": "x"}]),
        ("u1", "DALL-E", [{"role": "user", "content": "x", "type": "video"}]),
    ],
)
def test_append_invalid_arguments_persist_nothing(repo, test_db_path, user_id, tool, messages):
    """不正な入力はInvalidArgumentErrorで何も保存しない"""
    with pytest.raises(InvalidArgumentError):
        repo.append(user_id, tool, messages, timestamp=1)

    assert _count_rows(test_db_path) == 0


def test_get_conversation(repo):
    """IDで会話を取得"""
    conversation_id = repo.append("u1", "GPT-4", [{"role": "user", "content": "x"}], 7)

    conversation = repo.get(conversation_id)

    assert conversation is not None
    assert conversation.id == conversation_id
    assert repo.get("u1/missing") is None


def test_delete_conversation(repo):
    """削除後は一覧に含まれず、二度目はNotFound"""
    conversation_id = repo.append("u1", "GPT-4", [{"role": "user", "content": "x"}], 1)

    repo.delete(conversation_id, "u1")

    assert repo.list("u1") == []
    with pytest.raises(NotFoundError):
        repo.delete(conversation_id, "u1")


def test_delete_requires_matching_owner(repo):
    """所有者が異なる場合は削除されない"""
    conversation_id = repo.append("u1", "GPT-4", [{"role": "user", "content": "x"}], 1)

    with pytest.raises(NotFoundError):
        repo.delete(conversation_id, "intruder")

    assert len(repo.list("u1")) == 1


def test_delete_requires_owner(repo):
    """user_id未指定の削除はInvalidArgumentErrorで何も削除しない"""
    conversation_id = repo.append("u1", "GPT-4", [{"role": "user", "content": "x"}], 1)

    with pytest.raises(InvalidArgumentError):
        repo.delete(conversation_id, "")

    assert repo.get(conversation_id) is not None


def test_delete_empty_id(repo):
    with pytest.raises(InvalidArgumentError):
        repo.delete("", "u1")


@pytest.mark.parametrize("timestamp", [-1, 2**63, 10**20])
def test_append_rejects_out_of_range_timestamp(repo, test_db_path, timestamp):
    """SQLiteのINTEGER範囲外のtimestampはInvalidArgumentError"""
    with pytest.raises(InvalidArgumentError):
        repo.append("u1", "GPT-4", [{"role": "user", "content": "x"}], timestamp=timestamp)

    assert _count_rows(test_db_path) == 0


def test_append_accepts_max_timestamp(repo):
    repo.append("u1", "GPT-4", [{"role": "user", "content": "x"}], timestamp=2**63 - 1)

    assert repo.list("u1")[0].timestamp == 2**63 - 1


def test_list_limit_counts_only_valid_documents(repo, test_db_path):
    """スキップしたドキュメントはlimitの件数に含めない"""
    repo.append("u1", "GPT-4", [{"role": "user", "content": "first"}], timestamp=1)
    repo.append("u1", "GPT-4", [{"role": "user", "content": "second"}], timestamp=2)
    with sqlite3.connect(test_db_path) as conn:
        conn.execute(
            "INSERT INTO conversations (key, user_id, tool, timestamp, document) "
            "VALUES (?, ?, ?, ?, ?)",
            ("u1/legacy_9", "u1", "legacy", 9, json.dumps({"prompt": "old row"})),
        )

    results = repo.list("u1", limit=2)

    assert [c.timestamp for c in results] == [2, 1]


def test_list_grouped(repo):
    """text / image への振り分け"""
    repo.append("u1", "DALL-E", [{"role": "user", "content": "cat"}], timestamp=1)
    repo.append("u1", "GPT-4", [{"role": "user", "content": "hi"}], timestamp=2)
    repo.append("u1", "Stable Diffusion", [{"role": "user", "content": "dog"}], timestamp=3)

    grouped = repo.list_grouped("u1")

    assert [c.tool for c in grouped["image"]] == ["Stable Diffusion", "DALL-E"]
    assert [c.tool for c in grouped["text"]] == ["GPT-4"]


def test_list_skips_unrecognized_documents(repo, test_db_path):
    """形式不明のドキュメントはスキップ"""
    repo.append("u1", "GPT-4", [{"role": "user", "content": "ok"}], timestamp=1)
    with sqlite3.connect(test_db_path) as conn:
        conn.execute(
            "INSERT INTO conversations (key, user_id, tool, timestamp, document) "
            "VALUES (?, ?, ?, ?, ?)",
            ("u1/legacy_2", "u1", "legacy", 2, json.dumps({"prompt": "old row"})),
        )

    results = repo.list("u1")

    assert len(results) == 1
    assert results[0].tool == "GPT-4"


def test_list_malformed_document_is_storage_error(repo, test_db_path):
    """JSONとして壊れたドキュメントはStorageUnavailableError"""
    with sqlite3.connect(test_db_path) as conn:
        conn.execute(
            "INSERT INTO conversations (key, user_id, tool, timestamp, document) "
            "VALUES (?, ?, ?, ?, ?)",
            ("u1/broken_1", "u1", "broken", 1, "{not json"),
        )

    with pytest.raises(StorageUnavailableError):
        repo.list("u1")


def test_backend_failure_is_storage_unavailable(repo, monkeypatch):
    """sqlite3のエラーはStorageUnavailableErrorに変換される"""

    def broken_connect():
        raise sqlite3.OperationalError("unable to open database file")

    monkeypatch.setattr(repo, "_connect", broken_connect)

    with pytest.raises(StorageUnavailableError):
        repo.append("u1", "GPT-4", [{"role": "user", "content": "x"}], timestamp=1)
    with pytest.raises(StorageUnavailableError):
        repo.list("u1")
    with pytest.raises(StorageUnavailableError):
        repo.delete("u1/GPT-4_1_abc", "u1")


def test_db_path_from_environment(test_db_path):
    """db_path未指定時は環境変数のパスを使用"""
    repo = ChatHistoryRepository()
    assert repo.db_path == test_db_path
