"""Domain repositories."""

from channelhub.domain.repositories.channel_repository import ChannelRepository
from channelhub.domain.repositories.identity_repository import IdentityRepository

__all__ = [
    "ChannelRepository",
    "IdentityRepository",
]
