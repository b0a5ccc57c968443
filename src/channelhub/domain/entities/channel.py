"""Channel entity."""

from dataclasses import dataclass, field, replace
from uuid import uuid4

# Array fields of Channel that support bulk add / remove
CHANNEL_ARRAY_FIELDS = frozenset({"identity_ref"})


@dataclass(frozen=True)
class Channel:
    """Channel entity.

    Attributes:
        id: System-assigned channel ID (immutable).
        name: Channel name (unique across all channels).
        identity_ref: IDs of the member identities.
    """

    id: str
    name: str
    identity_ref: list[str] = field(default_factory=list)

    def has_identity(self, identity_id: str) -> bool:
        """指定した Identity がメンバーとして記録されているか"""
        return any(ref == identity_id for ref in self.identity_ref)


@dataclass(frozen=True)
class ChannelChanges:
    """チャンネルへの変更内容

    None のフィールドは変更しない。

    Attributes:
        name: 新しいチャンネル名
        identity_ref: 新しいメンバー ID リスト
    """

    name: str | None = None
    identity_ref: list[str] | None = None

    def apply_to(self, channel: Channel) -> Channel:
        """変更内容をチャンネルに適用した新しいエンティティを返す

        Args:
            channel: 適用先のチャンネル

        Returns:
            変更適用後の Channel
        """
        updated = channel
        if self.name is not None:
            updated = replace(updated, name=self.name)
        if self.identity_ref is not None:
            updated = replace(updated, identity_ref=list(self.identity_ref))
        return updated


@dataclass(frozen=True)
class ChannelSummary:
    """Identity から見たチャンネル概要

    Attributes:
        id: チャンネル ID
        name: チャンネル名
    """

    id: str
    name: str


def build_channel(changes: ChannelChanges | None = None) -> Channel:
    """空のテンプレートに変更内容を適用して Channel を生成する

    Args:
        changes: 初期データ（省略時は空のチャンネル）

    Returns:
        新しい ID を持つ Channel エンティティ
    """
    template = Channel(id=str(uuid4()), name="", identity_ref=[])
    if changes is None:
        return template
    return changes.apply_to(template)
