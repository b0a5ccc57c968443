"""Identity entity."""

from dataclasses import dataclass, field
from typing import Any

# Array fields of Identity that support bulk add / remove / replace
IDENTITY_ARRAY_FIELDS = frozenset({"channels"})


@dataclass(frozen=True)
class Identity:
    """Identity entity.

    Attributes:
        id: Identity ID.
        name: Display name.
        channels: Names of the channels this identity belongs to.
    """

    id: str
    name: str
    channels: list[str] = field(default_factory=list)

    def belongs_to(self, channel_name: str) -> bool:
        """指定した名前のチャンネルに所属しているか"""
        return any(name == channel_name for name in self.channels)


@dataclass(frozen=True)
class FormattedIdentity:
    """外部公開用に整形された Identity

    Attributes:
        id: Identity ID
        name: 表示名
        channels: 所属チャンネル名リスト
    """

    id: str
    name: str
    channels: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """dict 形式に変換する"""
        return {
            "id": self.id,
            "name": self.name,
            "channels": list(self.channels),
        }
