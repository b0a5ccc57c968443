"""Identity repository protocol."""

from collections.abc import Sequence
from typing import Protocol

from channelhub.domain.entities import Identity, UpdateResult


class IdentityRepository(Protocol):
    """Identity 情報リポジトリの抽象インターフェース

    Identity 側の CRUD は外部コンポーネントの責務であり、
    ここではチャンネルとのリレーション維持に必要な操作のみを定義する。
    """

    async def save(self, identity: Identity) -> None:
        """Identity を保存する（upsert）

        Args:
            identity: 保存する Identity
        """
        ...

    async def find_by_id(self, identity_id: str) -> Identity | None:
        """ID で Identity を検索する

        Args:
            identity_id: Identity ID

        Returns:
            Identity（存在しない場合は None）
        """
        ...

    async def find_by_field_value(
        self, field: str, values: Sequence[str]
    ) -> list[Identity]:
        """フィールド値で Identity を検索する

        配列フィールドの場合は、いずれかの要素が values に含まれるものを返す。

        Args:
            field: フィールド名（"id", "name", "channels"）
            values: 検索する値

        Returns:
            Identity リスト
        """
        ...

    async def replace_field_value(
        self, field: str, old_value: str, new_value: str
    ) -> UpdateResult:
        """配列フィールド中の一致する要素を置き換える

        old_value を含む全 Identity について、最初に一致した要素のみを
        new_value に置き換える。他の要素と順序は変更しない。

        Args:
            field: 配列フィールド名
            old_value: 置き換え前の値
            new_value: 置き換え後の値

        Returns:
            一括更新の結果
        """
        ...

    async def remove_values_from_field(
        self,
        identity_ids: Sequence[str] | None,
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドから値を取り除く

        Args:
            identity_ids: 対象 Identity ID（None の場合は全 Identity）
            field: 配列フィールド名
            values: 取り除く値

        Returns:
            一括更新の結果
        """
        ...

    async def add_values_to_field(
        self,
        identity_ids: Sequence[str],
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドの末尾に値を追加する

        Args:
            identity_ids: 対象 Identity ID
            field: 配列フィールド名
            values: 追加する値

        Returns:
            一括更新の結果
        """
        ...
