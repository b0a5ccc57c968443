"""Formatting utilities for identities and channels."""

from channelhub.domain.entities import (
    Channel,
    ChannelSummary,
    FormattedIdentity,
    Identity,
)


def format_identity(identity: Identity) -> FormattedIdentity:
    """Format an identity for external consumers.

    Args:
        identity: The identity to format.

    Returns:
        FormattedIdentity with a copy of the channel list.
    """
    return FormattedIdentity(
        id=identity.id,
        name=identity.name,
        channels=list(identity.channels),
    )


def format_channel_summary(channel: Channel) -> ChannelSummary:
    """Reduce a channel to its id and name."""
    return ChannelSummary(id=channel.id, name=channel.name)
