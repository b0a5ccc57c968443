"""Persistence infrastructure."""

from channelhub.infrastructure.persistence.channel_repository import (
    SQLiteChannelRepository,
)
from channelhub.infrastructure.persistence.database import DatabaseManager
from channelhub.infrastructure.persistence.exceptions import (
    DatabaseError,
    PersistenceError,
)
from channelhub.infrastructure.persistence.identity_repository import (
    SQLiteIdentityRepository,
)
from channelhub.infrastructure.persistence.models import (
    ChannelModel,
    IdentityModel,
)

__all__ = [
    "ChannelModel",
    "DatabaseError",
    "DatabaseManager",
    "IdentityModel",
    "PersistenceError",
    "SQLiteChannelRepository",
    "SQLiteIdentityRepository",
]
