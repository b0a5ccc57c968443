"""Channel repository protocol."""

from collections.abc import Sequence
from typing import Protocol

from channelhub.domain.entities import Channel, UpdateResult


class ChannelRepository(Protocol):
    """チャンネル情報リポジトリの抽象インターフェース

    チャンネル情報の保存・取得を抽象化し、
    永続化層の実装詳細を隠蔽する。
    """

    async def save(self, channel: Channel) -> None:
        """チャンネル情報を保存する

        既存のチャンネル（同一の channel_id）が存在する場合は更新する。

        Args:
            channel: 保存するチャンネル

        Raises:
            DuplicateKeyError: 同名のチャンネルが既に存在する
        """
        ...

    async def find_all(self) -> list[Channel]:
        """全チャンネルを取得する

        Returns:
            チャンネルリスト
        """
        ...

    async def find_by_id(self, channel_id: str) -> Channel | None:
        """ID でチャンネルを検索する

        Args:
            channel_id: チャンネル ID

        Returns:
            チャンネル（存在しない場合は None）
        """
        ...

    async def find_by_name(self, name: str) -> Channel | None:
        """名前でチャンネルを検索する

        Args:
            name: チャンネル名

        Returns:
            チャンネル（存在しない場合は None）
        """
        ...

    async def find_by_names(self, names: Sequence[str]) -> list[Channel]:
        """名前のリストに一致するチャンネルを取得する

        Args:
            names: チャンネル名のリスト

        Returns:
            チャンネルリスト
        """
        ...

    async def delete(self, channel_id: str) -> Channel | None:
        """チャンネルを削除する

        Args:
            channel_id: チャンネル ID

        Returns:
            削除されたチャンネル（存在しない場合は None）
        """
        ...

    async def remove_values_from_field(
        self,
        channel_ids: Sequence[str] | None,
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドから値を取り除く

        Args:
            channel_ids: 対象チャンネル ID（None の場合は全チャンネル）
            field: 配列フィールド名
            values: 取り除く値

        Returns:
            一括更新の結果
        """
        ...

    async def add_values_to_field(
        self,
        channel_ids: Sequence[str],
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドの末尾に値を追加する

        Args:
            channel_ids: 対象チャンネル ID
            field: 配列フィールド名
            values: 追加する値

        Returns:
            一括更新の結果
        """
        ...
