"""Domain services."""

from channelhub.domain.services.identity_formatter import (
    format_channel_summary,
    format_identity,
)

__all__ = [
    "format_channel_summary",
    "format_identity",
]
