"""
Tests for ReviewPipeline.

End-to-end review scenarios: submit, resolve, watch and notify, in both
fan-out modes and both watch match policies.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from reviewflow.models import ActivityAction, ProposalStatus
from reviewflow.services.pipeline import ReviewPipeline
from reviewflow.utils.exceptions import (
    ConflictError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)

CONTENT_PATH = "/subjects/1/types/2/contents/3"


def with_flags(config, **flags):
    return config.model_copy(update={"flags": config.flags.model_copy(update=flags)})


@pytest.fixture
async def pipeline(config):
    """Client-mode pipeline on the in-memory backend."""
    pipeline = ReviewPipeline(config)
    await pipeline.initialize()
    await pipeline.start()
    yield pipeline
    await pipeline.close()


@pytest.fixture
async def server_pipeline(server_config):
    """Server-mode pipeline with its outbox worker running."""
    pipeline = ReviewPipeline(server_config)
    await pipeline.initialize()
    await pipeline.start()
    yield pipeline
    await pipeline.close()


async def submit(pipeline, actor="alice"):
    return await pipeline.submit(CONTENT_PATH, "modify", {"title": "Fixed"}, "typo", actor)


async def wait_for_notifications(pipeline, user, count=1, timeout=5.0):
    async def _poll():
        while len(await pipeline.inbox.list_notifications(user)) < count:
            await asyncio.sleep(0.01)
        return await pipeline.inbox.list_notifications(user)

    return await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.mark.integration
@pytest.mark.asyncio
class TestClientModeReview:
    """Review flow with inline fan-out."""

    async def test_approval_notifies_watchers(self, pipeline):
        """Test approval by a reviewer notifies ancestor watchers but not the reviewer."""
        await pipeline.watch("carol", "/subjects/1")
        await pipeline.watch("bob", "/subjects/1/types/2")
        await pipeline.watch("dave", "/subjects/2")
        proposal = await submit(pipeline)

        result = await pipeline.resolve(proposal.id, "approve", actor="bob")

        assert result.proposal.status == ProposalStatus.APPROVED
        assert result.proposal.approved_by == "bob"
        assert result.dispatch.mode == "client"
        assert result.dispatch.result.failed == []

        approvals = [
            entry
            for entry in await pipeline.audit_log.entries_for(CONTENT_PATH)
            if entry.action == ActivityAction.APPROVE
        ]
        assert len(approvals) == 1

        carol = await pipeline.inbox.list_notifications("carol")
        assert len(carol) == 1
        assert carol[0].read is False
        assert carol[0].type == "proposal_approved"
        assert await pipeline.inbox.list_notifications("bob") == []
        assert await pipeline.inbox.list_notifications("dave") == []

    async def test_author_notified(self, pipeline):
        """Test the proposal author hears about the decision by default."""
        proposal = await submit(pipeline)

        await pipeline.resolve(proposal.id, "reject", actor="bob", note="not needed")

        [notification] = await pipeline.inbox.list_notifications("alice")
        assert notification.type == "proposal_rejected"
        assert "not needed" in notification.message

    async def test_author_not_notified_when_disabled(self, config):
        """Test notify_author=False leaves the author out."""
        pipeline = ReviewPipeline(with_flags(config, notify_author=False))
        await pipeline.initialize()
        try:
            proposal = await submit(pipeline)
            await pipeline.resolve(proposal.id, "approve", actor="bob")

            assert await pipeline.inbox.list_notifications("alice") == []
        finally:
            await pipeline.close()

    async def test_concurrent_resolutions(self, pipeline):
        """Test racing approve/reject commits exactly one decision."""
        await pipeline.watch("carol", CONTENT_PATH)
        proposal = await submit(pipeline)

        results = await asyncio.gather(
            pipeline.resolve(proposal.id, "approve", actor="bob"),
            pipeline.resolve(proposal.id, "reject", actor="erin"),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(r, ConflictError) for r in results if isinstance(r, Exception))
        assert (await pipeline.proposals.get(proposal.id)).status == winners[0].proposal.status
        assert len(await pipeline.inbox.list_notifications("carol")) == 1

    async def test_resolution_errors_propagate(self, pipeline):
        """Test resolution failures reach the caller unchanged."""
        proposal = await submit(pipeline)

        with pytest.raises(NotFoundError):
            await pipeline.resolve("prop_missing", "approve", actor="bob")
        with pytest.raises(ValidationError):
            await pipeline.resolve(proposal.id, "maybe", actor="bob")

    async def test_toggle_watch(self, pipeline):
        """Test toggling a watch twice returns to not watching."""
        assert await pipeline.toggle_watch("carol", CONTENT_PATH) is True
        assert await pipeline.toggle_watch("carol", CONTENT_PATH) is False

        proposal = await submit(pipeline)
        await pipeline.resolve(proposal.id, "approve", actor="bob")

        assert await pipeline.inbox.list_notifications("carol") == []

    async def test_unwatch_stops_notifications(self, pipeline):
        """Test an unwatched address no longer notifies."""
        await pipeline.watch("carol", CONTENT_PATH)
        await pipeline.unwatch("carol", CONTENT_PATH)
        proposal = await submit(pipeline)

        await pipeline.resolve(proposal.id, "approve", actor="bob")

        assert await pipeline.inbox.list_notifications("carol") == []

    async def test_drain_outbox_recovers_failed_dispatch(self, pipeline):
        """Test an event whose inline fan-out failed is delivered by drain_outbox."""
        await pipeline.watch("carol", CONTENT_PATH)
        proposal = await submit(pipeline)
        unavailable = AsyncMock(side_effect=TransientStorageError("store unavailable"))

        with patch.object(pipeline.fanout, "fanout", unavailable):
            result = await pipeline.resolve(proposal.id, "approve", actor="bob")

        unavailable.assert_awaited_once()
        assert result.proposal.status == ProposalStatus.APPROVED
        assert result.dispatch.error is not None
        assert await pipeline.inbox.list_notifications("carol") == []

        drained = await pipeline.drain_outbox()

        assert len(drained) == 1
        assert len(await pipeline.inbox.list_notifications("carol")) == 1
        assert await pipeline.drain_outbox() == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestExactMatchReview:
    """Review flow with exact-address watching."""

    async def test_only_exact_watchers_notified(self, config):
        """Test ancestor watches do not match under the exact policy."""
        pipeline = ReviewPipeline(with_flags(config, watch_match="exact"))
        await pipeline.initialize()
        try:
            await pipeline.watch("carol", "/subjects/1")
            await pipeline.watch("dave", CONTENT_PATH)
            proposal = await submit(pipeline)

            await pipeline.resolve(proposal.id, "approve", actor="bob")

            assert await pipeline.inbox.list_notifications("carol") == []
            assert len(await pipeline.inbox.list_notifications("dave")) == 1
        finally:
            await pipeline.close()


@pytest.mark.integration
@pytest.mark.asyncio
class TestServerModeReview:
    """Review flow with background fan-out."""

    async def test_resolve_returns_queued(self, server_pipeline):
        """Test resolution returns at once and notifications arrive later."""
        await server_pipeline.watch("carol", "/subjects/1")
        proposal = await submit(server_pipeline)

        result = await server_pipeline.resolve(proposal.id, "approve", actor="bob")

        assert result.proposal.status == ProposalStatus.APPROVED
        assert result.dispatch.mode == "server"
        assert result.dispatch.queued is True
        assert result.dispatch.result is None

        notifications = await wait_for_notifications(server_pipeline, "carol")
        assert notifications[0].type == "proposal_approved"

    async def test_many_events_drained(self, server_pipeline):
        """Test the worker delivers every queued event once."""
        await server_pipeline.watch("carol", CONTENT_PATH)
        for _ in range(3):
            proposal = await submit(server_pipeline)
            await server_pipeline.resolve(proposal.id, "approve", actor="bob")

        await wait_for_notifications(server_pipeline, "carol", count=3)
        await asyncio.sleep(0.1)

        assert len(await server_pipeline.inbox.list_notifications("carol")) == 3
        assert await server_pipeline.relay.pending() == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestDiscussionReview:
    """Comments notify watchers and thread participants."""

    async def test_comment_notifies_watchers_and_participants(self, pipeline):
        """Test a comment reaches the thread creator and watchers but not its author."""
        thread = await pipeline.discussions.create_thread("1", created_by="alice", type_id="2")
        await pipeline.watch("dave", "/subjects/1")

        result = await pipeline.post_comment(thread.id, actor="carol", text="  Looks wrong  ")

        assert result.comment.created_by == "carol"
        assert result.dispatch.result.written == 2
        [notification] = await pipeline.inbox.list_notifications("alice")
        assert notification.type == "discussion_comment"
        assert notification.target_path == "/subjects/1/types/2"
        assert "Looks wrong" in notification.message
        assert len(await pipeline.inbox.list_notifications("dave")) == 1
        assert await pipeline.inbox.list_notifications("carol") == []

    async def test_participants_disabled(self, config):
        """Test notify_thread_participants=False only notifies watchers."""
        pipeline = ReviewPipeline(with_flags(config, notify_thread_participants=False))
        await pipeline.initialize()
        try:
            thread = await pipeline.discussions.create_thread("1", created_by="alice")

            await pipeline.post_comment(thread.id, actor="carol", text="hello")

            assert await pipeline.inbox.list_notifications("alice") == []
        finally:
            await pipeline.close()

    async def test_comment_on_missing_thread(self, pipeline):
        """Test posting to an unknown thread raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await pipeline.post_comment("thr_missing", actor="carol", text="hello")

    async def test_comment_on_locked_thread(self, pipeline):
        """Test posting to a locked thread raises ConflictError and writes no event."""
        thread = await pipeline.discussions.create_thread("1", created_by="alice")
        await pipeline.discussions.lock_thread(thread.id)

        with pytest.raises(ConflictError):
            await pipeline.post_comment(thread.id, actor="carol", text="hello")
        assert await pipeline.relay.pending() == []


@pytest.mark.integration
@pytest.mark.sqlite
@pytest.mark.asyncio
class TestSQLitePipeline:
    """Review flow on the SQLite backend."""

    async def test_review_on_sqlite(self, config, tmp_path):
        """Test approval and notification against a SQLite database."""
        store_config = config.store.model_copy(
            update={"backend": "sqlite", "db_path": str(tmp_path / "pipeline.db")}
        )
        pipeline = ReviewPipeline(config.model_copy(update={"store": store_config}))
        await pipeline.initialize()
        try:
            await pipeline.watch("carol", "/subjects/1")
            proposal = await submit(pipeline)

            result = await pipeline.resolve(proposal.id, "approve", actor="bob")

            assert result.proposal.status == ProposalStatus.APPROVED
            assert len(await pipeline.inbox.list_notifications("carol")) == 1
        finally:
            await pipeline.close()
