"""SQLite implementation of IdentityRepository."""

from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone

from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from channelhub.domain.entities import IDENTITY_ARRAY_FIELDS, Identity, UpdateResult
from channelhub.infrastructure.persistence.array_utils import (
    pull_values,
    push_values,
    replace_first,
)
from channelhub.infrastructure.persistence.exceptions import DatabaseError
from channelhub.infrastructure.persistence.models import IdentityModel

# json_each() で配列要素を展開して一致する Identity を探す
_FIND_IDS_BY_CHANNELS = text("""
    SELECT DISTINCT i.identity_id
    FROM identities i, json_each(i.channels) AS c
    WHERE c.value IN :values
""").bindparams(bindparam("values", expanding=True))


class SQLiteIdentityRepository:
    """SQLite 版 IdentityRepository 実装

    Identity の保存・検索と、配列フィールド（所属チャンネル名）の
    一括更新を SQLite データベースに対して行う。
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

    async def save(self, identity: Identity) -> None:
        """Identity を保存する（upsert）

        Args:
            identity: 保存する Identity
        """
        async with self._session_factory() as session:
            result = await session.exec(
                select(IdentityModel).where(IdentityModel.identity_id == identity.id)
            )
            existing = result.first()

            if existing:
                existing.name = identity.name
                existing.channels = list(identity.channels)
                existing.updated_at = datetime.now(timezone.utc)
                session.add(existing)
            else:
                session.add(self._to_model(identity))

            await session.commit()

    async def find_by_id(self, identity_id: str) -> Identity | None:
        """ID で Identity を検索する

        Args:
            identity_id: Identity ID

        Returns:
            Identity（存在しない場合は None）
        """
        async with self._session_factory() as session:
            statement = select(IdentityModel).where(
                IdentityModel.identity_id == identity_id
            )
            result = await session.exec(statement)
            model = result.first()
            if model is None:
                return None
            return self._to_entity(model)

    async def find_by_field_value(
        self, field: str, values: Sequence[str]
    ) -> list[Identity]:
        """フィールド値で Identity を検索する

        Args:
            field: フィールド名（"id", "name", "channels"）
            values: 検索する値

        Returns:
            Identity リスト

        Raises:
            ValueError: 検索できないフィールド
        """
        if field not in ("id", "name", "channels"):
            raise ValueError(f"Cannot search identities by '{field}'")
        if not values:
            return []

        async with self._session_factory() as session:
            if field == "channels":
                identity_ids = await self._find_ids_containing(session, values)
                condition = IdentityModel.identity_id.in_(identity_ids)  # type: ignore[attr-defined]
            elif field == "id":
                condition = IdentityModel.identity_id.in_(list(values))  # type: ignore[attr-defined]
            else:
                condition = IdentityModel.name.in_(list(values))  # type: ignore[attr-defined]

            result = await session.exec(
                select(IdentityModel).where(condition).order_by(IdentityModel.id)
            )
            return [self._to_entity(m) for m in result.all()]

    async def replace_field_value(
        self, field: str, old_value: str, new_value: str
    ) -> UpdateResult:
        """配列フィールド中の一致する要素を置き換える（一括更新）

        Args:
            field: 配列フィールド名
            old_value: 置き換え前の値
            new_value: 置き換え後の値

        Returns:
            一括更新の結果

        Raises:
            ValueError: 配列フィールドではない
            DatabaseError: データベース操作に失敗した
        """
        self._check_array_field(field)
        try:
            async with self._session_factory() as session:
                identity_ids = await self._find_ids_containing(session, [old_value])
                if not identity_ids:
                    return UpdateResult()

                result = await session.exec(
                    select(IdentityModel).where(
                        IdentityModel.identity_id.in_(identity_ids)  # type: ignore[attr-defined]
                    )
                )
                models = result.all()

                for model in models:
                    setattr(
                        model,
                        field,
                        replace_first(getattr(model, field), old_value, new_value),
                    )
                    model.updated_at = datetime.now(timezone.utc)
                    session.add(model)

                await session.commit()
                return UpdateResult(matched=len(models), modified=len(models))
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to replace identity {field} value") from e

    async def remove_values_from_field(
        self,
        identity_ids: Sequence[str] | None,
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドから値を取り除く（一括更新）

        Args:
            identity_ids: 対象 Identity ID（None の場合は全 Identity）
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
                statement = select(IdentityModel)
                if identity_ids is not None:
                    statement = statement.where(
                        IdentityModel.identity_id.in_(list(identity_ids))  # type: ignore[attr-defined]
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
            raise DatabaseError(f"Failed to remove values from identity {field}") from e

    async def add_values_to_field(
        self,
        identity_ids: Sequence[str],
        field: str,
        values: Sequence[str],
    ) -> UpdateResult:
        """配列フィールドの末尾に値を追加する（一括更新）

        Args:
            identity_ids: 対象 Identity ID
            field: 配列フィールド名
            values: 追加する値

        Returns:
            一括更新の結果

        Raises:
            ValueError: 配列フィールドではない
            DatabaseError: データベース操作に失敗した
        """
        self._check_array_field(field)
        if not identity_ids or not values:
            return UpdateResult()

        try:
            async with self._session_factory() as session:
                result = await session.exec(
                    select(IdentityModel).where(
                        IdentityModel.identity_id.in_(list(identity_ids))  # type: ignore[attr-defined]
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
            raise DatabaseError(f"Failed to add values to identity {field}") from e

    async def _find_ids_containing(
        self, session: AsyncSession, values: Sequence[str]
    ) -> list[str]:
        """channels 配列にいずれかの値を含む Identity の ID を取得する"""
        result = await session.execute(
            _FIND_IDS_BY_CHANNELS, {"values": list(values)}
        )
        return [row[0] for row in result.all()]

    @staticmethod
    def _check_array_field(field: str) -> None:
        if field not in IDENTITY_ARRAY_FIELDS:
            raise ValueError(f"'{field}' is not an array field of Identity")

    def _to_entity(self, model: IdentityModel) -> Identity:
        """モデルをエンティティに変換する

        Args:
            model: IdentityModel インスタンス

        Returns:
            Identity エンティティ
        """
        return Identity(
            id=model.identity_id,
            name=model.name,
            channels=list(model.channels),
        )

    def _to_model(self, entity: Identity) -> IdentityModel:
        """エンティティをモデルに変換する

        Args:
            entity: Identity エンティティ

        Returns:
            IdentityModel インスタンス
        """
        return IdentityModel(
            identity_id=entity.id,
            name=entity.name,
            channels=list(entity.channels),
        )
