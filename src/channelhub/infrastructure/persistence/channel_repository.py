"""SQLite implementation of ChannelRepository."""

from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from channelhub.domain.entities import CHANNEL_ARRAY_FIELDS, Channel, UpdateResult
from channelhub.domain.exceptions import DuplicateKeyError
from channelhub.infrastructure.persistence.array_utils import (
    pull_values,
    push_values,
)
from channelhub.infrastructure.persistence.exceptions import DatabaseError
from channelhub.infrastructure.persistence.models import ChannelModel


class SQLiteChannelRepository:
    """SQLite 版 ChannelRepository 実装

    チャンネルの保存・検索・削除と、メンバー配列（identity_ref）の
    一括更新を channels テーブルに対して行う。
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]],
    ) -> None:
        """初期化

        Args:
            session_factory: 非同期セッション生成関数
        """
        self._session_factory = session_factory

    async def save(self, channel: Channel) -> None:
        """チャンネル情報を保存する（upsert）

        同じ ID のチャンネルがあれば名前とメンバーを上書きする。

        Args:
            channel: 保存するチャンネル

        Raises:
            DuplicateKeyError: 同名のチャンネルが既に存在する
            DatabaseError: データベース操作に失敗した
        """
        try:
            async with self._session_factory() as session:
                result = await session.exec(
                    select(ChannelModel).where(ChannelModel.channel_id == channel.id)
                )
                existing = result.first()

                if existing:
                    # 更新
                    existing.name = channel.name
                    existing.identity_ref = list(channel.identity_ref)
                    existing.updated_at = datetime.now(timezone.utc)
                    session.add(existing)
                else:
                    # 新規作成
                    model = self._to_model(channel)
                    session.add(model)

                await session.commit()
        except IntegrityError as e:
            raise DuplicateKeyError("name", channel.name) from e
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to save channel {channel.id}") from e

    async def find_all(self) -> list[Channel]:
        """全チャンネルを取得する

        Returns:
            チャンネルリスト
        """
        async with self._session_factory() as session:
            statement = select(ChannelModel).order_by(ChannelModel.id)
            result = await session.exec(statement)
            models = result.all()
            return [self._to_entity(m) for m in models]

    async def find_by_id(self, channel_id: str) -> Channel | None:
        """ID でチャンネルを検索する

        Args:
            channel_id: チャンネル ID

        Returns:
            チャンネル（存在しない場合は None）
        """
        async with self._session_factory() as session:
            statement = select(ChannelModel).where(
                ChannelModel.channel_id == channel_id
            )
            result = await session.exec(statement)
            model = result.first()
            if model is None:
                return None
            return self._to_entity(model)

    async def find_by_name(self, name: str) -> Channel | None:
        """名前でチャンネルを検索する

        Args:
            name: チャンネル名

        Returns:
            チャンネル（存在しない場合は None）
        """
        async with self._session_factory() as session:
            statement = select(ChannelModel).where(ChannelModel.name == name)
            result = await session.exec(statement)
            model = result.first()
            if model is None:
                return None
            return self._to_entity(model)

    async def find_by_names(self, names: Sequence[str]) -> list[Channel]:
        """名前のリストに一致するチャンネルを取得する

        Args:
            names: チャンネル名のリスト

        Returns:
            チャンネルリスト
        """
        if not names:
            return []

        async with self._session_factory() as session:
            statement = (
                select(ChannelModel)
                .where(ChannelModel.name.in_(list(names)))  # type: ignore[attr-defined]
                .order_by(ChannelModel.id)
            )
            result = await session.exec(statement)
            return [self._to_entity(m) for m in result.all()]

    async def delete(self, channel_id: str) -> Channel | None:
        """チャンネルを削除する

        Args:
            channel_id: チャンネル ID

        Returns:
            削除されたチャンネル（存在しない場合は None）
        """
        try:
            async with self._session_factory() as session:
                result = await session.exec(
                    select(ChannelModel).where(ChannelModel.channel_id == channel_id)
                )
                model = result.first()
                if model is None:
                    return None

                deleted = self._to_entity(model)
                await session.delete(model)
                await session.commit()
                return deleted
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to delete channel {channel_id}") from e

    async def remove_values_from_field(
        self,
        channel_ids: Sequence[str] | None,
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドから値を取り除く（一括更新）

        対象の全チャンネルを一つのセッションで更新し、一度だけコミットする。

        Args:
            channel_ids: 対象チャンネル ID（None の場合は全チャンネル）
            field: 配列フィールド名
            values: 取り除く値

        Returns:
            一括更新の結果

        Raises:
            ValueError: 配列フィールドではない
            DatabaseError: データベース操作に失敗した
        """
        self._check_array_field(field)
        try:
            async with self._session_factory() as session:
                statement = select(ChannelModel)
                if channel_ids is not None:
                    statement = statement.where(
                        ChannelModel.channel_id.in_(list(channel_ids))  # type: ignore[attr-defined]
                    )
                result = await session.exec(statement)
                models = result.all()

                modified = 0
                for model in models:
                    current = getattr(model, field)
                    updated = pull_values(current, values)
                    if updated != current:
                        setattr(model, field, updated)
                        model.updated_at = datetime.now(timezone.utc)
                        session.add(model)
                        modified += 1

                await session.commit()
                return UpdateResult(matched=len(models), modified=modified)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to remove values from channel {field}") from e

    async def add_values_to_field(
        self,
        channel_ids: Sequence[str],
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドの末尾に値を追加する（一括更新）

        Args:
            channel_ids: 対象チャンネル ID
            field: 配列フィールド名
            values: 追加する値

        Returns:
            一括更新の結果

        Raises:
            ValueError: 配列フィールドではない
            DatabaseError: データベース操作に失敗した
        """
        self._check_array_field(field)
        if not channel_ids or not values:
            return UpdateResult()

        try:
            async with self._session_factory() as session:
                result = await session.exec(
                    select(ChannelModel).where(
                        ChannelModel.channel_id.in_(list(channel_ids))  # type: ignore[attr-defined]
                    )
                )
                models = result.all()

                for model in models:
                    setattr(model, field, push_values(getattr(model, field), values))
                    model.updated_at = datetime.now(timezone.utc)
                    session.add(model)

                await session.commit()
                return UpdateResult(matched=len(models), modified=len(models))
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to add values to channel {field}") from e

    @staticmethod
    def _check_array_field(field: str) -> None:
        if field not in CHANNEL_ARRAY_FIELDS:
            raise ValueError(f"'{field}' is not an array field of Channel")

    def _to_entity(self, model: ChannelModel) -> Channel:
        """モデルをエンティティに変換する

        Args:
            model: ChannelModel インスタンス

        Returns:
            Channel エンティティ
        """
        return Channel(
            id=model.channel_id,
            name=model.name,
            identity_ref=list(model.identity_ref),
        )

    def _to_model(self, entity: Channel) -> ChannelModel:
        """エンティティをモデルに変換する

        Args:
            entity: Channel エンティティ

        Returns:
            ChannelModel インスタンス
        """
        return ChannelModel(
            channel_id=entity.id,
            name=entity.name,
            identity_ref=list(entity.identity_ref),
        )
