"""Channel / Identity relationship consistency manager."""

import asyncio
import logging
from collections.abc import Awaitable, Sequence

from channelhub.domain.entities import (
    CHANNEL_ARRAY_FIELDS,
    Channel,
    ChannelChanges,
    ChannelSummary,
    FormattedIdentity,
    Identity,
    UpdateResult,
    build_channel,
)
from channelhub.domain.exceptions import (
    BadRequestError,
    ConflictError,
    DuplicateKeyError,
    InternalError,
    NotFoundError,
    StaleReferenceError,
)
from channelhub.domain.repositories import ChannelRepository, IdentityRepository
from channelhub.domain.services import format_channel_summary, format_identity

logger = logging.getLogger(__name__)


def _as_list(value: str | Sequence[str] | None) -> list[str] | None:
    """Normalize a single value or a sequence of values to a list."""
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    return list(value)


class ChannelRelationshipManager:
    """Keeps Channel.identity_ref and Identity.channels in sync.

    Each channel stores the ids of its member identities and each identity
    stores the names of the channels it belongs to. Every operation that
    touches both sides writes one side, then the other. There is no
    transaction spanning the two writes: when the first write has
    committed and the second fails, StaleReferenceError is raised so the
    drift can be detected and repaired elsewhere.
    """

    def __init__(
        self,
        channel_repository: ChannelRepository,
        identity_repository: IdentityRepository,
    ) -> None:
        """Initialize the manager.

        Args:
            channel_repository: Store for channel records.
            identity_repository: Store for identity records.
        """
        self._channel_repository = channel_repository
        self._identity_repository = identity_repository

    async def get(self, channel_id: str) -> Channel | None:
        """Fetch a channel by id.

        Returns:
            The channel, or None if it does not exist.

        Raises:
            InternalError: The channel store failed.
        """
        try:
            return await self._channel_repository.find_by_id(channel_id)
        except Exception as e:
            raise InternalError("Could not fetch requested channel") from e

    async def create_channel(self, changes: ChannelChanges) -> Channel:
        """Create a channel from the given initial data.

        When the initial data lists identities, the new channel name is
        appended to each of their channel lists after the channel is saved.

        Args:
            changes: Initial channel data merged onto an empty channel.

        Returns:
            The created channel.

        Raises:
            BadRequestError: The name is empty or a listed identity is missing.
            ConflictError: A channel with the same name already exists.
            StaleReferenceError: The channel was saved but its identities
                were not updated.
        """
        channel = build_channel(changes)
        if not channel.name:
            raise BadRequestError("Missing channel name")

        try:
            existing = await self._channel_repository.find_by_name(channel.name)
        except Exception as e:
            raise InternalError("Could not check for an existing channel") from e
        if existing is not None:
            raise ConflictError("There already exists a channel with the provided name")

        if channel.identity_ref:
            await self._ensure_identities_exist(channel.identity_ref)

        await self._save_channel(channel)
        logger.info("Created channel %s (%s)", channel.id, channel.name)

        if not channel.identity_ref:
            return channel

        try:
            await self._identity_repository.add_values_to_field(
                channel.identity_ref, "channels", [channel.name]
            )
        except Exception as e:
            logger.warning(
                "Channel %s created but %d identities were not linked back: %s",
                channel.id,
                len(channel.identity_ref),
                e,
            )
            raise StaleReferenceError(
                "Channel created but its identities could not be updated",
                channel_id=channel.id,
                identity_ids=channel.identity_ref,
            ) from e

        return channel

    async def delete_channel(self, channel_id: str) -> None:
        """Delete a channel and remove its name from its identities.

        Raises:
            NotFoundError: The channel does not exist.
            StaleReferenceError: The channel was deleted but some identities
                still list its name.
        """
        try:
            deleted = await self._channel_repository.delete(channel_id)
        except Exception as e:
            raise InternalError("Could not delete the requested channel") from e

        if deleted is None:
            raise NotFoundError("Requested channel not found in database")

        logger.info("Deleted channel %s (%s)", deleted.id, deleted.name)

        if not deleted.identity_ref:
            return

        try:
            await self._identity_repository.remove_values_from_field(
                deleted.identity_ref, "channels", [deleted.name]
            )
        except Exception as e:
            logger.warning(
                "Channel %s deleted but identity back-references were not "
                "cleaned up: %s",
                deleted.id,
                e,
            )
            raise StaleReferenceError(
                "Could not remove the deleted channel from its identities",
                channel_id=deleted.id,
                identity_ids=deleted.identity_ref,
            ) from e

    async def update_channel(self, channel_id: str, changes: ChannelChanges) -> None:
        """Update a channel and propagate a rename to its identities.

        Identities store channel names, so a rename replaces the old name
        with the new one in every identity's channel list. The channel
        write is not rolled back if that propagation fails.

        Args:
            channel_id: Channel to update.
            changes: Fields to change. Membership changes are not accepted
                here; use attach / detach instead.

        Raises:
            BadRequestError: The changes are invalid.
            NotFoundError: The channel does not exist.
            ConflictError: The new name is used by another channel.
            StaleReferenceError: The channel was renamed but identities may
                still list the old name.
        """
        if changes.identity_ref is not None:
            raise BadRequestError(
                "Channel members cannot be changed by update; "
                "attach or detach identities instead"
            )

        try:
            channel = await self._channel_repository.find_by_id(channel_id)
        except Exception as e:
            raise InternalError("Could not fetch requested channel") from e
        if channel is None:
            raise NotFoundError("Requested channel not found in database")

        old_name = channel.name
        updated = changes.apply_to(channel)
        if not updated.name:
            raise BadRequestError("Channel name cannot be empty")

        renamed = updated.name != old_name
        if renamed:
            try:
                other = await self._channel_repository.find_by_name(updated.name)
            except Exception as e:
                raise InternalError("Could not check for an existing channel") from e
            if other is not None and other.id != channel.id:
                raise ConflictError(
                    "There already exists a channel with the provided name"
                )

        await self._save_channel(updated)

        if not renamed:
            return

        logger.info("Renamed channel %s: %s -> %s", channel.id, old_name, updated.name)

        try:
            result = await self._identity_repository.replace_field_value(
                "channels", old_name, updated.name
            )
        except Exception as e:
            logger.warning(
                "Channel %s renamed but identities still reference '%s': %s",
                channel.id,
                old_name,
                e,
            )
            raise StaleReferenceError(
                "Channel updated but identity channel lists may be stale",
                channel_id=channel.id,
                identity_ids=channel.identity_ref,
            ) from e

        logger.debug(
            "Propagated rename of channel %s to %d identities",
            channel.id,
            result.modified,
        )

    async def retrieve_identity_list_for_channel(
        self, channel_id: str
    ) -> list[FormattedIdentity]:
        """Return the formatted member identities of a channel.

        The order of the result is not specified.

        Raises:
            BadRequestError: The id is missing or the channel does not exist.
        """
        if not channel_id:
            raise BadRequestError("Missing channel id parameter")

        found = await self.get(channel_id)
        if found is None:
            raise BadRequestError("Requested channel not found in database")

        if not found.identity_ref:
            logger.debug("Channel %s has no identities", channel_id)
            return []

        try:
            identities = await self._identity_repository.find_by_field_value(
                "id", found.identity_ref
            )
        except Exception as e:
            raise InternalError("Could not fetch identities for the channel") from e

        return [format_identity(identity) for identity in identities]

    async def retrieve_channel_data_for_identity(
        self, identity_id: str
    ) -> list[ChannelSummary]:
        """Return id and name of every channel an identity belongs to.

        Raises:
            BadRequestError: The id is missing or the identity does not exist.
        """
        if not identity_id:
            raise BadRequestError("Missing identity id parameter")

        identity = await self._find_identity(identity_id)

        if not identity.channels:
            return []

        try:
            channels = await self._channel_repository.find_by_names(identity.channels)
        except Exception as e:
            raise InternalError("Could not fetch channels for the identity") from e

        return [format_channel_summary(channel) for channel in channels]

    async def attach_identity_to_channel(
        self, channel_id: str, identity_id: str
    ) -> None:
        """Record a relationship on both the channel and the identity.

        Raises:
            BadRequestError: The channel or the identity does not exist.
            ConflictError: Either side already records the relationship.
            InternalError: Neither side could be updated.
            StaleReferenceError: Only one side was updated.
        """
        found = await self.get(channel_id)
        if found is None:
            raise BadRequestError("Requested channel not found in database")

        identity = await self._find_identity(identity_id)

        if identity.belongs_to(found.name) or found.has_identity(identity.id):
            raise ConflictError(
                "A relationship between the provided channel and identity "
                "is already recorded"
            )

        await self._update_both_sides(
            "attach",
            found,
            identity,
            self._channel_repository.add_values_to_field(
                [found.id], "identity_ref", [identity.id]
            ),
            self._identity_repository.add_values_to_field(
                [identity.id], "channels", [found.name]
            ),
        )

    async def detach_identity_from_channel(
        self, channel_id: str, identity_id: str
    ) -> None:
        """Remove one relationship from both the channel and the identity.

        The relationship must be recorded on both sides; a half-recorded
        relationship is refused instead of silently cleaned up.

        Raises:
            BadRequestError: The channel could not be read or does not exist,
                or the identity does not exist.
            InternalError: The identity could not be read, or neither side
                could be updated.
            ConflictError: The relationship is not recorded on both sides.
            StaleReferenceError: Only one side was updated.
        """
        try:
            found = await self._channel_repository.find_by_id(channel_id)
        except Exception as e:
            raise BadRequestError("Could not fetch requested channel") from e
        if found is None:
            raise BadRequestError("Requested channel not found in database")

        identity = await self._find_identity(identity_id)

        if not (identity.belongs_to(found.name) and found.has_identity(identity.id)):
            raise ConflictError(
                "No relationship exists between the provided channel and identity"
            )

        await self._update_both_sides(
            "detach",
            found,
            identity,
            self.remove_values_from_field(found.id, "identity_ref", identity.id),
            self._identity_repository.remove_values_from_field(
                [identity.id], "channels", [found.name]
            ),
        )

    async def remove_values_from_field(
        self,
        channel_ids: str | Sequence[str] | None,
        field: str,
        values: str | Sequence[str],
    ) -> UpdateResult:
        """Remove values from an array field of the given channels.

        All matching channels are updated in one bulk store update.

        Args:
            channel_ids: One id, a sequence of ids, or None for every channel.
            field: Array field name.
            values: One value or a sequence of values to remove.

        Returns:
            Result of the bulk update.

        Raises:
            BadRequestError: field is not an array field of Channel.
            InternalError: The bulk update failed.
        """
        if field not in CHANNEL_ARRAY_FIELDS:
            raise BadRequestError(f"'{field}' is not an array field of Channel")

        try:
            return await self._channel_repository.remove_values_from_field(
                _as_list(channel_ids), field, _as_list(values) or []
            )
        except Exception as e:
            raise InternalError("Could not delete data from channel") from e

    async def _find_identity(self, identity_id: str) -> Identity:
        try:
            identity = await self._identity_repository.find_by_id(identity_id)
        except Exception as e:
            raise InternalError("Could not fetch requested identity") from e
        if identity is None:
            raise BadRequestError("Requested identity not found in database")
        return identity

    async def _ensure_identities_exist(self, identity_ids: Sequence[str]) -> None:
        try:
            found = await self._identity_repository.find_by_field_value(
                "id", identity_ids
            )
        except Exception as e:
            raise InternalError("Could not fetch requested identities") from e

        missing = set(identity_ids) - {identity.id for identity in found}
        if missing:
            raise BadRequestError(
                f"Requested identities not found in database: {sorted(missing)}"
            )

    async def _save_channel(self, channel: Channel) -> None:
        try:
            await self._channel_repository.save(channel)
        except DuplicateKeyError as e:
            raise ConflictError(
                "There already exists a channel with the provided name"
            ) from e
        except Exception as e:
            raise InternalError("Could not save the channel") from e

    async def _update_both_sides(
        self,
        action: str,
        channel: Channel,
        identity: Identity,
        channel_update: Awaitable[UpdateResult],
        identity_update: Awaitable[UpdateResult],
    ) -> None:
        """Run both writes concurrently and wait until both have settled."""
        results = await asyncio.gather(
            channel_update, identity_update, return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        channel_error, identity_error = (
            outcome if isinstance(outcome, Exception) else None for outcome in results
        )

        if channel_error is None and identity_error is None:
            logger.info(
                "%s identity %s %s channel %s",
                action.capitalize(),
                identity.id,
                "to" if action == "attach" else "from",
                channel.id,
            )
            return

        if channel_error is not None and identity_error is not None:
            raise InternalError(
                f"Could not {action} the identity and the channel"
            ) from channel_error

        failed_side = "channel" if channel_error is not None else "identity"
        logger.warning(
            "%s of identity %s and channel %s applied to one side only "
            "(%s update failed)",
            action.capitalize(),
            identity.id,
            channel.id,
            failed_side,
        )
        raise StaleReferenceError(
            f"Could not {action} the {failed_side} side of the relationship",
            channel_id=channel.id,
            identity_ids=[identity.id],
        ) from (channel_error or identity_error)
