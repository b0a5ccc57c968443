"""Shared fixtures."""

from collections.abc import AsyncGenerator

import pytest

from channelhub.application.services import ChannelRelationshipManager
from channelhub.infrastructure.persistence import (
    DatabaseManager,
    SQLiteChannelRepository,
    SQLiteIdentityRepository,
)


@pytest.fixture
async def db_manager() -> AsyncGenerator[DatabaseManager, None]:
    """Create in-memory database with tables."""
    manager = DatabaseManager(":memory:")
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def channel_repository(db_manager: DatabaseManager) -> SQLiteChannelRepository:
    """Create channel repository."""
    return SQLiteChannelRepository(db_manager.get_session)


@pytest.fixture
def identity_repository(db_manager: DatabaseManager) -> SQLiteIdentityRepository:
    """Create identity repository."""
    return SQLiteIdentityRepository(db_manager.get_session)


@pytest.fixture
def manager(
    channel_repository: SQLiteChannelRepository,
    identity_repository: SQLiteIdentityRepository,
) -> ChannelRelationshipManager:
    """Create relationship manager backed by SQLite repositories."""
    return ChannelRelationshipManager(
        channel_repository=channel_repository,
        identity_repository=identity_repository,
    )

