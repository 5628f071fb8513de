"""
Tests for WatchlistIndex and the watch match policies.

Each policy is tested in isolation and through subscriber lookup.
"""

import pytest

from reviewflow.models import ContentAddress
from reviewflow.services import (
    AncestorMatchPolicy,
    ExactMatchPolicy,
    WatchlistIndex,
    create_match_policy,
)
from reviewflow.utils.exceptions import ValidationError

CONTENT_PATH = "/subjects/1/types/2/contents/3"


@pytest.mark.unit
class TestMatchPolicies:
    """Tests for the match policies on their own."""

    def test_ancestor_policy_covers_lineage(self):
        """Test ancestor matching looks up every prefix and the address itself."""
        address = ContentAddress.parse(CONTENT_PATH)

        covering = [a.path for a in AncestorMatchPolicy().covering(address)]

        assert "/subjects/1" in covering
        assert "/subjects/1/types/2" in covering
        assert covering[-1] == CONTENT_PATH

    def test_exact_policy_covers_only_address(self):
        """Test exact matching looks up the address only."""
        address = ContentAddress.parse(CONTENT_PATH)

        assert ExactMatchPolicy().covering(address) == [address]

    def test_create_match_policy(self):
        """Test policies are created by name."""
        assert isinstance(create_match_policy("ancestor"), AncestorMatchPolicy)
        assert isinstance(create_match_policy("exact"), ExactMatchPolicy)
        with pytest.raises(ValueError):
            create_match_policy("fuzzy")


@pytest.mark.unit
@pytest.mark.asyncio
class TestWatchlistIndex:
    """Tests for watch bookkeeping."""

    async def test_watch_and_is_watching(self, watchlist):
        """Test a watched address is reported as watched."""
        item = await watchlist.watch("alice", CONTENT_PATH)

        assert item.owner == "alice"
        assert item.target_path == CONTENT_PATH
        assert await watchlist.is_watching("alice", CONTENT_PATH)
        assert not await watchlist.is_watching("bob", CONTENT_PATH)

    async def test_watch_is_idempotent(self, watchlist):
        """Test watching twice equals watching once."""
        first = await watchlist.watch("alice", CONTENT_PATH)
        second = await watchlist.watch("alice", CONTENT_PATH + "/")

        assert second.created_at == first.created_at
        assert len(await watchlist.watched_by("alice")) == 1
        assert await watchlist.subscribers_of(CONTENT_PATH) == {"alice"}

    async def test_watch_unwatch_round_trip(self, watchlist):
        """Test unwatch removes the user from subscribers."""
        await watchlist.watch("alice", CONTENT_PATH)
        await watchlist.watch("bob", CONTENT_PATH)

        await watchlist.unwatch("alice", CONTENT_PATH)

        assert await watchlist.subscribers_of(CONTENT_PATH) == {"bob"}
        assert await watchlist.watched_by("alice") == []

    async def test_unwatch_not_watching(self, watchlist):
        """Test unwatching an unwatched address is a no-op."""
        await watchlist.unwatch("alice", CONTENT_PATH)

        assert await watchlist.subscribers_of(CONTENT_PATH) == set()

    async def test_toggle(self, watchlist):
        """Test toggle flips the watch state."""
        assert await watchlist.toggle("alice", CONTENT_PATH) is True
        assert await watchlist.is_watching("alice", CONTENT_PATH)
        assert await watchlist.toggle("alice", CONTENT_PATH) is False
        assert not await watchlist.is_watching("alice", CONTENT_PATH)

    async def test_watched_by_lists_all(self, watchlist):
        """Test a user's watch items cover every watched address."""
        await watchlist.watch("alice", "/subjects/1")
        await watchlist.watch("alice", "/subjects/2")

        paths = {item.target_path for item in await watchlist.watched_by("alice")}

        assert paths == {"/subjects/1", "/subjects/2"}

    @pytest.mark.parametrize("user", ["", "a/b"])
    async def test_invalid_user(self, watchlist, user):
        """Test empty or slash-containing user ids are rejected."""
        with pytest.raises(ValidationError):
            await watchlist.watch(user, CONTENT_PATH)

    async def test_invalid_path(self, watchlist):
        """Test empty paths are rejected."""
        with pytest.raises(ValidationError):
            await watchlist.watch("alice", "")


@pytest.mark.unit
@pytest.mark.asyncio
class TestSubscribers:
    """Tests for subscriber lookup under each policy."""

    async def test_ancestor_subscribers(self, memory_store):
        """Test subject and type watchers are subscribers of content below them."""
        index = WatchlistIndex(memory_store, policy=AncestorMatchPolicy())
        await index.watch("subject_fan", "/subjects/1")
        await index.watch("type_fan", "/subjects/1/types/2")
        await index.watch("content_fan", CONTENT_PATH)
        await index.watch("other_subject", "/subjects/10")
        await index.watch("sibling", "/subjects/1/types/2/contents/4")

        assert await index.subscribers_of(CONTENT_PATH) == {
            "subject_fan",
            "type_fan",
            "content_fan",
        }

    async def test_ancestor_does_not_match_descendants(self, memory_store):
        """Test a watch below the target does not make a subscriber of the target."""
        index = WatchlistIndex(memory_store, policy=AncestorMatchPolicy())
        await index.watch("content_fan", CONTENT_PATH)

        assert await index.subscribers_of("/subjects/1") == set()

    async def test_exact_subscribers(self, memory_store):
        """Test exact matching ignores ancestor watches."""
        index = WatchlistIndex(memory_store, policy=ExactMatchPolicy())
        await index.watch("subject_fan", "/subjects/1")
        await index.watch("content_fan", CONTENT_PATH)

        assert await index.subscribers_of(CONTENT_PATH) == {"content_fan"}
        assert await index.subscribers_of("/subjects/1") == {"subject_fan"}

    async def test_subscribers_on_both_backends(self, store):
        """Test subscriber lookup through the contract of each backend."""
        index = WatchlistIndex(store)
        await index.watch("alice", "/subjects/1")
        await index.watch("bob", CONTENT_PATH)
        await index.unwatch("bob", CONTENT_PATH)

        assert await index.subscribers_of(CONTENT_PATH) == {"alice"}
