"""Domain entities."""

from channelhub.domain.entities.channel import (
    CHANNEL_ARRAY_FIELDS,
    Channel,
    ChannelChanges,
    ChannelSummary,
    build_channel,
)
from channelhub.domain.entities.identity import (
    IDENTITY_ARRAY_FIELDS,
    FormattedIdentity,
    Identity,
)
from channelhub.domain.entities.update_result import UpdateResult

__all__ = [
    "CHANNEL_ARRAY_FIELDS",
    "IDENTITY_ARRAY_FIELDS",
    "Channel",
    "ChannelChanges",
    "ChannelSummary",
    "FormattedIdentity",
    "Identity",
    "UpdateResult",
    "build_channel",
]
