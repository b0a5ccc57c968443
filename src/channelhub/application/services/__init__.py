"""Application services."""

from channelhub.application.services.channel_relationship_manager import (
    ChannelRelationshipManager,
)

__all__ = [
    "ChannelRelationshipManager",
]
