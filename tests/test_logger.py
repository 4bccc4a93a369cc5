"""ロギング設定のテスト"""

import logging

import pytest

from src.history_service.logger import (
    FILE_HANDLER_NAME,
    STREAM_HANDLER_NAME,
    setup_logger,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler.get_name() in (FILE_HANDLER_NAME, STREAM_HANDLER_NAME):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def _own_handlers(root):
    return [
        h for h in root.handlers if h.get_name() in (FILE_HANDLER_NAME, STREAM_HANDLER_NAME)
    ]


def test_setup_logger_writes_to_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "history.log"

    setup_logger("DEBUG", str(log_file))
    logging.getLogger("src.chat_history").info("saved conversation")
    for handler in _own_handlers(restore_root_logger):
        handler.flush()

    assert restore_root_logger.level == logging.DEBUG
    assert "saved conversation" in log_file.read_text(encoding="utf-8")


def test_setup_logger_is_idempotent(tmp_path, restore_root_logger):
    setup_logger("INFO", str(tmp_path / "first.log"))
    setup_logger("WARNING", str(tmp_path / "second.log"))

    handlers = _own_handlers(restore_root_logger)
    assert sorted(h.get_name() for h in handlers) == [FILE_HANDLER_NAME, STREAM_HANDLER_NAME]
    assert restore_root_logger.level == logging.WARNING


def test_setup_logger_rejects_unknown_level(tmp_path, restore_root_logger):
    with pytest.raises(ValueError):
        setup_logger("LOUD", str(tmp_path / "x.log"))
