"""
ロギング設定モジュール

プロセス起動時に呼び出す（server/run.py）。再呼び出し時はハンドラを差し替える。
"""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_HANDLER_NAME = "history_service.file"
STREAM_HANDLER_NAME = "history_service.stream"


def setup_logger(
    log_level: str = "INFO", log_file: str = "logs/history_service.log"
) -> None:
    """
    ルートロガーにファイル/標準エラー出力のハンドラを設定

    Args:
        log_level: ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: ログファイルのパス

    Raises:
        ValueError: 未知のログレベルの場合
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() in (FILE_HANDLER_NAME, STREAM_HANDLER_NAME):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.set_name(FILE_HANDLER_NAME)
    stream_handler = logging.StreamHandler()
    stream_handler.set_name(STREAM_HANDLER_NAME)
    for handler in (file_handler, stream_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level)
