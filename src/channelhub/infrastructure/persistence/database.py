"""SQLite engine and session management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# channels / identities テーブルをメタデータに登録する
from channelhub.infrastructure.persistence import models as _models  # noqa: F401

MEMORY_DATABASE = ":memory:"


def _database_url(database_path: str) -> str:
    if database_path == MEMORY_DATABASE:
        return "sqlite+aiosqlite:///:memory:"
    return f"sqlite+aiosqlite:///{database_path}"


class DatabaseManager:
    """チャンネル / Identity ストアの接続管理

    エンジンの遅延生成、テーブル作成、セッションの払い出しを行う。

    SQLite は同時に一つの書き込みしか受け付けず、インメモリ DB は
    単一の接続を共有する。そのためセッションはマネージャ単位で
    asyncio.Lock により直列化される。
    """

    def __init__(self, database_path: str) -> None:
        """初期化

        Args:
            database_path: SQLite ファイルのパス（":memory:" でインメモリ DB）
        """
        self._database_path = database_path
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._lock = asyncio.Lock()

    @property
    def database_path(self) -> str:
        return self._database_path

    def get_engine(self) -> AsyncEngine:
        """非同期エンジンを取得する（初回のみ生成）

        ファイル DB の場合は親ディレクトリを作成する。

        Returns:
            AsyncEngine インスタンス
        """
        if self._engine is not None:
            return self._engine

        if self._database_path == MEMORY_DATABASE:
            self._engine = create_async_engine(
                _database_url(self._database_path), poolclass=StaticPool
            )
        else:
            Path(self._database_path).parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_async_engine(_database_url(self._database_path))

        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        return self._engine

    async def create_tables(self) -> None:
        """channels / identities テーブルを作成する（既存なら何もしない）"""
        engine = self.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """セッションを取得する（async context manager）

        同一マネージャのセッションは同時に一つだけ開かれる。
        セッション内で別のセッションを要求するとデッドロックする。

        Yields:
            AsyncSession インスタンス
        """
        self.get_engine()
        assert self._session_factory is not None
        async with self._lock:
            async with self._session_factory() as session:
                yield session

    async def close(self) -> None:
        """エンジンを破棄する（未生成なら何もしない）"""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
