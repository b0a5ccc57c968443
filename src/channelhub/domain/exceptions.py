"""Domain exceptions."""

from collections.abc import Sequence


class ChannelHubError(Exception):
    """Base exception for channel / identity relationship errors."""


class BadRequestError(ChannelHubError):
    """入力が不正、または参照先のエンティティが存在しない場合の例外"""


class NotFoundError(ChannelHubError):
    """操作対象のエンティティが存在しない場合の例外"""


class ConflictError(ChannelHubError):
    """一意制約違反、またはリレーションの状態が矛盾している場合の例外"""


class InternalError(ChannelHubError):
    """ストアや協調コンポーネントの操作が失敗した場合の例外

    元の例外は __cause__ に保持される。
    """


class StaleReferenceError(InternalError):
    """主たる書き込みは確定したが、逆参照の更新に失敗した場合の例外

    チャンネルと Identity の間で不整合（ドリフト）が残っている可能性がある。
    """

    def __init__(
        self,
        message: str,
        channel_id: str,
        identity_ids: Sequence[str] = (),
    ) -> None:
        """初期化

        Args:
            message: エラーメッセージ
            channel_id: 書き込みが確定したチャンネルの ID
            identity_ids: 逆参照が古いままの可能性がある Identity の ID
        """
        self.channel_id = channel_id
        self.identity_ids = list(identity_ids)
        super().__init__(message)


class DuplicateKeyError(ChannelHubError):
    """ストアの一意インデックスが書き込みを拒否した場合の例外"""

    def __init__(self, key: str, value: str) -> None:
        """初期化

        Args:
            key: 重複したフィールド名
            value: 重複した値
        """
        self.key = key
        self.value = value
        super().__init__(f"Duplicate value for '{key}': {value}")
