"""Chat Historyのカスタム例外定義

HTTP層ではそれぞれ 400 / 404 / 500 に対応付けられる。
"""


class HistoryError(Exception):
    """Chat History基底例外"""

    pass


class InvalidArgumentError(HistoryError):
    """必須項目の欠落・不正な値"""

    pass


class NotFoundError(HistoryError):
    """指定IDの会話が存在しない"""

    pass


class StorageUnavailableError(HistoryError):
    """バックエンドストアへのアクセス失敗、または不正なデータ"""

    pass
