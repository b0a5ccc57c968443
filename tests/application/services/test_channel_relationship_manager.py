"""Tests for ChannelRelationshipManager against SQLite repositories."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from channelhub.application.services import ChannelRelationshipManager
from channelhub.domain.entities import (
    Channel,
    ChannelChanges,
    FormattedIdentity,
    Identity,
    UpdateResult,
)
from channelhub.domain.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
)
from channelhub.infrastructure.persistence import (
    SQLiteChannelRepository,
    SQLiteIdentityRepository,
)


async def assert_consistent(
    channel_repository: SQLiteChannelRepository,
    identity_repository: SQLiteIdentityRepository,
    identity_ids: list[str],
) -> None:
    """Assert the bidirectional invariant for every channel / identity pair."""
    channels = await channel_repository.find_all()
    identities = await identity_repository.find_by_field_value("id", identity_ids)
    for channel in channels:
        for identity in identities:
            assert channel.has_identity(identity.id) == identity.belongs_to(
                channel.name
            ), f"{channel.name} / {identity.id} out of sync"


@pytest.fixture
async def alice(identity_repository: SQLiteIdentityRepository) -> Identity:
    """Save an identity that belongs to no channel."""
    identity = Identity(id="I001", name="alice")
    await identity_repository.save(identity)
    return identity


@pytest.fixture
async def bob(identity_repository: SQLiteIdentityRepository) -> Identity:
    """Save a second identity that belongs to no channel."""
    identity = Identity(id="I002", name="bob")
    await identity_repository.save(identity)
    return identity


class TestGet:
    """get method tests."""

    async def test_returns_channel(self, manager: ChannelRelationshipManager) -> None:
        """Test fetching an existing channel."""
        created = await manager.create_channel(ChannelChanges(name="general"))

        assert await manager.get(created.id) == created

    async def test_missing_channel_returns_none(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that a missing channel is not an error."""
        assert await manager.get("missing") is None


class TestCreateChannel:
    """create_channel method tests."""

    async def test_creates_empty_channel(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that a channel is created without members by default."""
        channel = await manager.create_channel(ChannelChanges(name="general"))

        assert channel.id
        assert channel.name == "general"
        assert channel.identity_ref == []
        assert await manager.get(channel.id) == channel

    async def test_duplicate_name_raises_conflict(
        self, manager: ChannelRelationshipManager, alice: Identity
    ) -> None:
        """Test that a duplicate name fails regardless of other fields."""
        await manager.create_channel(ChannelChanges(name="general"))

        with pytest.raises(ConflictError):
            await manager.create_channel(
                ChannelChanges(name="general", identity_ref=[alice.id])
            )

    async def test_empty_name_raises_bad_request(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that a channel needs a name."""
        with pytest.raises(BadRequestError):
            await manager.create_channel(ChannelChanges())

    async def test_initial_identities_get_back_references(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
        alice: Identity,
        bob: Identity,
    ) -> None:
        """Test that initial members list the new channel."""
        channel = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id, bob.id])
        )

        assert channel.identity_ref == [alice.id, bob.id]
        for identity_id in (alice.id, bob.id):
            identity = await identity_repository.find_by_id(identity_id)
            assert identity is not None
            assert identity.channels == ["general"]
        await assert_consistent(
            channel_repository, identity_repository, [alice.id, bob.id]
        )

    async def test_unknown_initial_identity_raises_bad_request(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        alice: Identity,
    ) -> None:
        """Test that no channel is saved when a member does not exist."""
        with pytest.raises(BadRequestError):
            await manager.create_channel(
                ChannelChanges(name="general", identity_ref=[alice.id, "missing"])
            )

        assert await channel_repository.find_all() == []

    async def test_concurrent_creates_with_same_name(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
    ) -> None:
        """Test the read-then-write race on the name check.

        Both calls may pass the pre-check; the unique index on the name
        column then rejects the second write, so exactly one wins.
        """
        results = await asyncio.gather(
            manager.create_channel(ChannelChanges(name="general")),
            manager.create_channel(ChannelChanges(name="general")),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, Channel)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 1
        assert await channel_repository.find_all() == created


class TestDeleteChannel:
    """delete_channel method tests."""

    async def test_cascades_to_identities(
        self,
        manager: ChannelRelationshipManager,
        identity_repository: SQLiteIdentityRepository,
        alice: Identity,
        bob: Identity,
    ) -> None:
        """Test that the channel name is removed from every member."""
        channel = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id, bob.id])
        )
        await manager.create_channel(
            ChannelChanges(name="random", identity_ref=[alice.id])
        )

        await manager.delete_channel(channel.id)

        assert await manager.get(channel.id) is None
        found_alice = await identity_repository.find_by_id(alice.id)
        found_bob = await identity_repository.find_by_id(bob.id)
        assert found_alice is not None and found_alice.channels == ["random"]
        assert found_bob is not None and found_bob.channels == []

    async def test_channel_without_members(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test deleting a channel with no members."""
        channel = await manager.create_channel(ChannelChanges(name="general"))

        await manager.delete_channel(channel.id)

        assert await manager.get(channel.id) is None

    async def test_missing_channel_raises_not_found(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test deleting a channel that does not exist."""
        with pytest.raises(NotFoundError):
            await manager.delete_channel("missing")


class TestUpdateChannel:
    """update_channel method tests."""

    async def test_rename_propagates_to_identities(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
    ) -> None:
        """Test that the matching element is replaced and order kept."""
        channel = Channel(id="C001", name="a", identity_ref=["I001"])
        await channel_repository.save(channel)
        await channel_repository.save(
            Channel(id="C002", name="b", identity_ref=["I001"])
        )
        await identity_repository.save(
            Identity(id="I001", name="alice", channels=["a", "b"])
        )

        await manager.update_channel(channel.id, ChannelChanges(name="z"))

        identity = await identity_repository.find_by_id("I001")
        assert identity is not None
        assert identity.channels == ["z", "b"]
        renamed = await manager.get(channel.id)
        assert renamed is not None
        assert renamed.name == "z"
        assert renamed.identity_ref == ["I001"]
        await assert_consistent(channel_repository, identity_repository, ["I001"])

    async def test_same_name_leaves_identities_alone(
        self,
        manager: ChannelRelationshipManager,
        identity_repository: SQLiteIdentityRepository,
        alice: Identity,
    ) -> None:
        """Test that an update without a rename does not touch identities."""
        channel = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id])
        )

        await manager.update_channel(channel.id, ChannelChanges(name="general"))

        identity = await identity_repository.find_by_id(alice.id)
        assert identity is not None
        assert identity.channels == ["general"]

    async def test_missing_channel_raises_not_found(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test updating a channel that does not exist."""
        with pytest.raises(NotFoundError):
            await manager.update_channel("missing", ChannelChanges(name="z"))

    async def test_rename_onto_existing_name_raises_conflict(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that names stay unique across renames."""
        general = await manager.create_channel(ChannelChanges(name="general"))
        await manager.create_channel(ChannelChanges(name="random"))

        with pytest.raises(ConflictError):
            await manager.update_channel(general.id, ChannelChanges(name="random"))

        found = await manager.get(general.id)
        assert found is not None
        assert found.name == "general"

    async def test_member_changes_are_rejected(
        self, manager: ChannelRelationshipManager, alice: Identity
    ) -> None:
        """Test that membership cannot be rewritten through update."""
        channel = await manager.create_channel(ChannelChanges(name="general"))

        with pytest.raises(BadRequestError):
            await manager.update_channel(
                channel.id, ChannelChanges(identity_ref=[alice.id])
            )

    async def test_empty_name_is_rejected(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that a channel cannot be renamed to an empty name."""
        channel = await manager.create_channel(ChannelChanges(name="general"))

        with pytest.raises(BadRequestError):
            await manager.update_channel(channel.id, ChannelChanges(name=""))


class TestRetrieveIdentityListForChannel:
    """retrieve_identity_list_for_channel method tests."""

    async def test_returns_formatted_identities(
        self,
        manager: ChannelRelationshipManager,
        alice: Identity,
        bob: Identity,
    ) -> None:
        """Test resolving every member."""
        channel = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id, bob.id])
        )

        result = await manager.retrieve_identity_list_for_channel(channel.id)

        assert sorted(result, key=lambda i: i.id) == [
            FormattedIdentity(id=alice.id, name="alice", channels=["general"]),
            FormattedIdentity(id=bob.id, name="bob", channels=["general"]),
        ]

    async def test_missing_id_raises_bad_request(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that a channel id is required."""
        with pytest.raises(BadRequestError):
            await manager.retrieve_identity_list_for_channel("")

    async def test_missing_channel_raises_bad_request(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that an unknown channel is a bad request."""
        with pytest.raises(BadRequestError):
            await manager.retrieve_identity_list_for_channel("missing")

    async def test_empty_channel_skips_identity_lookup(
        self, channel_repository: SQLiteChannelRepository
    ) -> None:
        """Test the fast path for channels without members."""
        identity_repository = Mock()
        identity_repository.find_by_field_value = AsyncMock(return_value=[])
        manager = ChannelRelationshipManager(channel_repository, identity_repository)
        await channel_repository.save(Channel(id="C001", name="general"))

        result = await manager.retrieve_identity_list_for_channel("C001")

        assert result == []
        identity_repository.find_by_field_value.assert_not_awaited()


class TestRetrieveChannelDataForIdentity:
    """retrieve_channel_data_for_identity method tests."""

    async def test_returns_channel_summaries(
        self, manager: ChannelRelationshipManager, alice: Identity
    ) -> None:
        """Test listing the channels of an identity."""
        general = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id])
        )
        await manager.create_channel(ChannelChanges(name="random"))

        result = await manager.retrieve_channel_data_for_identity(alice.id)

        assert [(c.id, c.name) for c in result] == [(general.id, "general")]

    async def test_identity_without_channels(
        self, manager: ChannelRelationshipManager, alice: Identity
    ) -> None:
        """Test an identity that belongs to no channel."""
        assert await manager.retrieve_channel_data_for_identity(alice.id) == []

    async def test_missing_identity_raises_bad_request(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that an unknown identity is a bad request."""
        with pytest.raises(BadRequestError):
            await manager.retrieve_channel_data_for_identity("missing")


class TestAttachIdentityToChannel:
    """attach_identity_to_channel method tests."""

    async def test_records_both_sides(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
        alice: Identity,
    ) -> None:
        """Test attaching an identity to a channel."""
        channel = await manager.create_channel(ChannelChanges(name="general"))

        await manager.attach_identity_to_channel(channel.id, alice.id)

        found = await manager.get(channel.id)
        identity = await identity_repository.find_by_id(alice.id)
        assert found is not None and found.identity_ref == [alice.id]
        assert identity is not None and identity.channels == ["general"]
        await assert_consistent(channel_repository, identity_repository, [alice.id])

    async def test_attach_twice_raises_conflict(
        self, manager: ChannelRelationshipManager, alice: Identity
    ) -> None:
        """Test that an existing relationship is not recorded twice."""
        channel = await manager.create_channel(ChannelChanges(name="general"))
        await manager.attach_identity_to_channel(channel.id, alice.id)

        with pytest.raises(ConflictError):
            await manager.attach_identity_to_channel(channel.id, alice.id)

    async def test_missing_channel_raises_bad_request(
        self, manager: ChannelRelationshipManager, alice: Identity
    ) -> None:
        """Test attaching to an unknown channel."""
        with pytest.raises(BadRequestError):
            await manager.attach_identity_to_channel("missing", alice.id)

    async def test_missing_identity_raises_bad_request(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test attaching an unknown identity."""
        channel = await manager.create_channel(ChannelChanges(name="general"))

        with pytest.raises(BadRequestError):
            await manager.attach_identity_to_channel(channel.id, "missing")


class TestDetachIdentityFromChannel:
    """detach_identity_from_channel method tests."""

    async def test_removes_both_sides(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
        alice: Identity,
        bob: Identity,
    ) -> None:
        """Test detaching, then detaching again."""
        channel = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id, bob.id])
        )

        await manager.detach_identity_from_channel(channel.id, alice.id)

        found = await manager.get(channel.id)
        identity = await identity_repository.find_by_id(alice.id)
        assert found is not None and found.identity_ref == [bob.id]
        assert identity is not None and identity.channels == []
        await assert_consistent(
            channel_repository, identity_repository, [alice.id, bob.id]
        )

        with pytest.raises(ConflictError):
            await manager.detach_identity_from_channel(channel.id, alice.id)

    async def test_identity_side_only_raises_conflict(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
    ) -> None:
        """Test an identity that lists the channel the channel does not list."""
        await channel_repository.save(Channel(id="C001", name="general"))
        await identity_repository.save(
            Identity(id="I001", name="alice", channels=["general"])
        )

        with pytest.raises(ConflictError):
            await manager.detach_identity_from_channel("C001", "I001")

        identity = await identity_repository.find_by_id("I001")
        assert identity is not None and identity.channels == ["general"]

    async def test_channel_side_only_raises_conflict(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
    ) -> None:
        """Test a channel that lists the identity the identity does not list."""
        await channel_repository.save(
            Channel(id="C001", name="general", identity_ref=["I001"])
        )
        await identity_repository.save(Identity(id="I001", name="alice"))

        with pytest.raises(ConflictError):
            await manager.detach_identity_from_channel("C001", "I001")

        found = await manager.get("C001")
        assert found is not None and found.identity_ref == ["I001"]

    async def test_missing_channel_raises_bad_request(
        self, manager: ChannelRelationshipManager, alice: Identity
    ) -> None:
        """Test detaching from an unknown channel."""
        with pytest.raises(BadRequestError):
            await manager.detach_identity_from_channel("missing", alice.id)

    async def test_missing_identity_raises_bad_request(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test detaching an unknown identity."""
        channel = await manager.create_channel(ChannelChanges(name="general"))

        with pytest.raises(BadRequestError):
            await manager.detach_identity_from_channel(channel.id, "missing")


class TestRemoveValuesFromField:
    """remove_values_from_field method tests."""

    async def test_accepts_single_id_and_value(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
    ) -> None:
        """Test that scalars are treated as one-element lists."""
        await channel_repository.save(
            Channel(id="C001", name="general", identity_ref=["I001", "I002"])
        )

        result = await manager.remove_values_from_field("C001", "identity_ref", "I001")

        assert result == UpdateResult(matched=1, modified=1)
        found = await manager.get("C001")
        assert found is not None and found.identity_ref == ["I002"]

    async def test_accepts_id_sequence(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
    ) -> None:
        """Test updating several channels in one call."""
        await channel_repository.save(
            Channel(id="C001", name="one", identity_ref=["I001"])
        )
        await channel_repository.save(
            Channel(id="C002", name="two", identity_ref=["I001"])
        )

        result = await manager.remove_values_from_field(
            ["C001", "C002"], "identity_ref", ["I001"]
        )

        assert result == UpdateResult(matched=2, modified=2)

    async def test_unknown_field_raises_bad_request(
        self, manager: ChannelRelationshipManager
    ) -> None:
        """Test that only array fields can be pulled from."""
        with pytest.raises(BadRequestError):
            await manager.remove_values_from_field("C001", "name", "general")


class TestInvariant:
    """The bidirectional invariant across a sequence of operations."""

    async def test_holds_after_every_operation(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
        alice: Identity,
        bob: Identity,
    ) -> None:
        """Test create, attach, rename, detach and delete in sequence."""
        identity_ids = [alice.id, bob.id]
        general = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id])
        )
        random = await manager.create_channel(ChannelChanges(name="random"))

        steps: list[Callable[[], Awaitable[Any]]] = [
            lambda: manager.attach_identity_to_channel(general.id, bob.id),
            lambda: manager.attach_identity_to_channel(random.id, alice.id),
            lambda: manager.update_channel(general.id, ChannelChanges(name="lobby")),
            lambda: manager.detach_identity_from_channel(general.id, alice.id),
            lambda: manager.update_channel(random.id, ChannelChanges(name="general")),
            lambda: manager.delete_channel(general.id),
        ]

        await assert_consistent(channel_repository, identity_repository, identity_ids)
        for step in steps:
            await step()
            await assert_consistent(
                channel_repository, identity_repository, identity_ids
            )

        found_alice = await identity_repository.find_by_id(alice.id)
        found_bob = await identity_repository.find_by_id(bob.id)
        assert found_alice is not None and found_alice.channels == ["general"]
        assert found_bob is not None and found_bob.channels == []


class _RenameAfterIdentityLookup:
    """Identity repository that runs a callback after each identity lookup."""

    def __init__(
        self,
        inner: SQLiteIdentityRepository,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        self._inner = inner
        self._callback = callback

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    async def find_by_id(self, identity_id: str) -> Identity | None:
        identity = await self._inner.find_by_id(identity_id)
        await self._callback()
        return identity


class TestKnownRaces:
    """Interleavings that are not prevented."""

    async def test_rename_during_detach_leaves_stale_name(
        self,
        manager: ChannelRelationshipManager,
        channel_repository: SQLiteChannelRepository,
        identity_repository: SQLiteIdentityRepository,
        alice: Identity,
    ) -> None:
        """Test a rename landing between detach's reads and its writes.

        Detach works on the name it read, so the renamed entry stays on the
        identity while the channel side is removed.
        """
        channel = await manager.create_channel(
            ChannelChanges(name="general", identity_ref=[alice.id])
        )

        async def rename() -> None:
            await manager.update_channel(channel.id, ChannelChanges(name="lobby"))

        racing_manager = ChannelRelationshipManager(
            channel_repository,
            _RenameAfterIdentityLookup(identity_repository, rename),  # type: ignore[arg-type]
        )

        await racing_manager.detach_identity_from_channel(channel.id, alice.id)

        found = await manager.get(channel.id)
        identity = await identity_repository.find_by_id(alice.id)
        assert found is not None
        assert found.name == "lobby"
        assert found.identity_ref == []
        assert identity is not None
        assert identity.channels == ["lobby"]
