"""
設定管理モジュール

関連クラス:
  - chat_history.ChatHistoryRepository: history.db_path を使用
  - server.app.create_app: この設定からアプリケーションを構築
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

RESPONSE_LAYOUTS = ("flat", "grouped")


@dataclass
class HistoryConfig:
    """会話履歴ストア設定"""

    db_path: Optional[str] = None  # 未指定時はリポジトリの既定パス
    default_limit: int = 50
    response_layout: str = "flat"  # flat: {results}, grouped: {text, image}
    image_tools: List[str] = field(
        default_factory=lambda: ["DALL-E", "Stable Diffusion"]
    )

    def __post_init__(self):
        if self.response_layout not in RESPONSE_LAYOUTS:
            raise ValueError(
                f"response_layout must be one of {RESPONSE_LAYOUTS}, "
                f"got {self.response_layout!r}"
            )
        if self.default_limit < 1:
            raise ValueError("default_limit must be >= 1")


@dataclass
class ServerConfig:
    """HTTPサーバー設定"""

    host: str = "0.0.0.0"
    port: int = 8787


@dataclass
class Config:
    """アプリケーション設定クラス"""

    # 履歴ストア設定
    history: HistoryConfig = None  # type: ignore

    # サーバー設定
    server: ServerConfig = None  # type: ignore

    # ログ設定
    log_level: str = "INFO"
    log_file: str = "logs/history_service.log"

    def __post_init__(self):
        """デフォルト値の初期化"""
        if self.history is None:
            self.history = HistoryConfig()
        if self.server is None:
            self.server = ServerConfig()

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "Config":
        """YAMLファイルから設定を読み込む

        Args:
            config_path: 設定ファイルパス（省略時はconfig/app_config.yamlを使用）

        Returns:
            Config: 設定インスタンス

        Raises:
            ValueError: response_layout等が不正な場合
        """
        if config_path is None:
            project_root = Path(__file__).parent.parent.parent
            config_path = project_root / "config" / "app_config.yaml"

        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data: Dict[str, Any] = yaml.safe_load(f) or {}

        history_data = yaml_data.get("history") or {}
        server_data = yaml_data.get("server") or {}
        log_data = yaml_data.get("log") or {}

        # 環境変数のDBパスを優先
        db_path = os.getenv("HISTORY_DB_PATH") or history_data.get("db_path")

        return cls(
            history=HistoryConfig(
                db_path=db_path,
                default_limit=history_data.get("default_limit", 50),
                response_layout=history_data.get("response_layout", "flat"),
                image_tools=list(
                    history_data.get("image_tools", ["DALL-E", "Stable Diffusion"])
                ),
            ),
            server=ServerConfig(
                host=server_data.get("host", "0.0.0.0"),
                port=server_data.get("port", 8787),
            ),
            log_level=log_data.get("level", "INFO"),
            log_file=log_data.get("file", "logs/history_service.log"),
        )

    @classmethod
    def from_env(cls) -> "Config":
        """環境変数から設定を読み込む"""
        image_tools = os.getenv("HISTORY_IMAGE_TOOLS")
        return cls(
            history=HistoryConfig(
                db_path=os.getenv("HISTORY_DB_PATH"),
                default_limit=int(os.getenv("HISTORY_DEFAULT_LIMIT", "50")),
                response_layout=os.getenv("HISTORY_RESPONSE_LAYOUT", "flat"),
                image_tools=[tool.strip() for tool in image_tools.split(",") if tool.strip()]
                if image_tools
                else ["DALL-E", "Stable Diffusion"],
            ),
            server=ServerConfig(
                host=os.getenv("HISTORY_HOST", "0.0.0.0"),
                port=int(os.getenv("HISTORY_PORT", "8787")),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "logs/history_service.log"),
        )
