"""
Tests for NotificationFanout.

Covers recipient computation, de-duplication across repeated runs,
per-recipient failure isolation, the timeout bound and retries.
"""

import pytest

from reviewflow.models import FanoutEvent
from reviewflow.services import (
    DiscussionDirectory,
    NotificationFanout,
    NotificationInbox,
    RetryPolicy,
    WatchlistIndex,
)

CONTENT_PATH = "/subjects/1/types/2/contents/3"


def approval_event(event_id: str = "evt_1", **overrides) -> FanoutEvent:
    data = {
        "event_id": event_id,
        "target_path": CONTENT_PATH,
        "type": "proposal_approved",
        "message": "Proposal approved",
        "exclude_actor": "bob",
        **overrides,
    }
    return FanoutEvent(**data)


@pytest.fixture
def faulty_fanout(faulty_store):
    watchlist = WatchlistIndex(faulty_store)
    return NotificationFanout(faulty_store, watchlist), watchlist, faulty_store


@pytest.mark.unit
@pytest.mark.asyncio
class TestRecipients:
    """Tests for recipient computation."""

    async def test_watchers_of_lineage(self, fanout, watchlist):
        """Test watchers of the address and its ancestors are recipients."""
        await watchlist.watch("alice", "/subjects/1")
        await watchlist.watch("carol", CONTENT_PATH)
        await watchlist.watch("dave", "/subjects/9")

        assert await fanout.recipients_for(approval_event()) == {"alice", "carol"}

    async def test_actor_excluded_even_when_watching(self, fanout, watchlist):
        """Test the triggering actor never receives their own notification."""
        await watchlist.watch("bob", CONTENT_PATH)
        await watchlist.watch("carol", CONTENT_PATH)

        recipients = await fanout.recipients_for(
            approval_event(extra_recipients=["bob"])
        )

        assert recipients == {"carol"}

    async def test_extra_recipients_merged(self, fanout, watchlist):
        """Test explicit recipients are unioned and de-duplicated."""
        await watchlist.watch("alice", CONTENT_PATH)

        recipients = await fanout.recipients_for(
            approval_event(extra_recipients=["alice", "erin"])
        )

        assert recipients == {"alice", "erin"}

    async def test_thread_participants_for_discussion_events(self, fanout, discussions):
        """Test discussion events also reach thread participants."""
        thread = await discussions.create_thread("1", created_by="alice", type_id="2")
        await discussions.add_comment(thread.id, "first!", created_by="carol")

        recipients = await fanout.recipients_for(
            approval_event(
                type="discussion_comment",
                target_path="/subjects/1/types/2",
                exclude_actor="carol",
                thread_id=thread.id,
            )
        )

        assert recipients == {"alice"}

    async def test_thread_participants_flag_off(self, memory_store, watchlist, discussions):
        """Test participants are ignored when the flag is off."""
        fanout = NotificationFanout(
            memory_store, watchlist, discussions=discussions, notify_thread_participants=False
        )
        thread = await discussions.create_thread("1", created_by="alice")

        recipients = await fanout.recipients_for(
            approval_event(type="discussion_comment", target_path="/subjects/1", thread_id=thread.id)
        )

        assert recipients == set()

    async def test_participants_ignored_for_non_discussion_events(self, fanout, discussions):
        """Test a thread id on a proposal event does not add participants."""
        thread = await discussions.create_thread("1", created_by="alice")

        assert await fanout.recipients_for(approval_event(thread_id=thread.id)) == set()


@pytest.mark.unit
@pytest.mark.asyncio
class TestFanout:
    """Tests for notification writes."""

    async def test_writes_one_unread_notification_per_recipient(self, fanout, watchlist, inbox):
        """Test each recipient gets exactly one unread notification."""
        await watchlist.watch("alice", "/subjects/1")
        await watchlist.watch("carol", CONTENT_PATH)

        result = await fanout.fanout(approval_event())

        assert result.written == 2
        assert result.duplicates == 0
        assert result.ok
        for user in ("alice", "carol"):
            notifications = await inbox.list_notifications(user)
            assert len(notifications) == 1
            assert notifications[0].read is False
            assert notifications[0].type == "proposal_approved"
            assert notifications[0].target_path == CONTENT_PATH
            assert notifications[0].event_id == "evt_1"
        assert await inbox.list_notifications("bob") == []

    async def test_second_run_writes_nothing(self, fanout, watchlist, inbox):
        """Test fan-out of the same event twice is idempotent."""
        await watchlist.watch("alice", CONTENT_PATH)
        await watchlist.watch("carol", CONTENT_PATH)

        first = await fanout.fanout(approval_event())
        second = await fanout.fanout(approval_event())

        assert first.written == 2
        assert second.written == 0
        assert second.duplicates == 2
        assert len(await inbox.list_notifications("alice")) == 1

    async def test_distinct_events_both_delivered(self, fanout, watchlist, inbox):
        """Test different event ids produce different notifications."""
        await watchlist.watch("alice", CONTENT_PATH)

        await fanout.fanout(approval_event("evt_1"))
        await fanout.fanout(approval_event("evt_2"))

        assert len(await inbox.list_notifications("alice")) == 2

    async def test_no_recipients(self, fanout):
        """Test an event nobody watches writes nothing."""
        result = await fanout.fanout(approval_event())

        assert result.written == 0
        assert result.failed == []

    async def test_failure_does_not_stop_others(self, faulty_fanout):
        """Test a failing recipient is reported while the rest are written."""
        fanout, watchlist, store = faulty_fanout
        for user in ("alice", "carol", "dave"):
            await watchlist.watch(user, CONTENT_PATH)
        store.failures["carol"] = -1

        result = await fanout.fanout(approval_event())

        assert result.written == 2
        assert result.failed == ["carol"]
        assert await NotificationInbox(store).list_notifications("carol") == []
        assert len(await NotificationInbox(store).list_notifications("dave")) == 1

    async def test_timeout_reports_unfinished_recipients(self, faulty_fanout):
        """Test recipients still in flight at the deadline are failed, others kept."""
        fanout, watchlist, store = faulty_fanout
        await watchlist.watch("alice", CONTENT_PATH)
        await watchlist.watch("slowpoke", CONTENT_PATH)
        store.stalled.add("slowpoke")

        result = await fanout.fanout(approval_event(), timeout=0.2)

        assert result.written == 1
        assert result.failed == ["slowpoke"]
        assert len(await NotificationInbox(store).list_notifications("alice")) == 1

    async def test_retry_recovers_transient_failures(self, faulty_fanout):
        """Test retries absorb transient failures below the attempt ceiling."""
        fanout, watchlist, store = faulty_fanout
        await watchlist.watch("alice", CONTENT_PATH)
        store.failures["alice"] = 2

        result = await fanout.fanout(
            approval_event(), retry=RetryPolicy(max_attempts=3, retry_delay=0.0)
        )

        assert result.written == 1
        assert result.ok
        assert store.create_attempts["alice"] == 3

    async def test_retry_gives_up_after_max_attempts(self, faulty_fanout):
        """Test a recipient failing every attempt is reported permanently failed."""
        fanout, watchlist, store = faulty_fanout
        await watchlist.watch("alice", CONTENT_PATH)
        store.failures["alice"] = -1

        result = await fanout.fanout(
            approval_event(), retry=RetryPolicy(max_attempts=2, retry_delay=0.0)
        )

        assert result.failed == ["alice"]
        assert store.create_attempts["alice"] == 2

    async def test_without_retry_single_attempt(self, faulty_fanout):
        """Test client-style fan-out does not retry."""
        fanout, watchlist, store = faulty_fanout
        await watchlist.watch("alice", CONTENT_PATH)
        store.failures["alice"] = 1

        result = await fanout.fanout(approval_event())

        assert result.failed == ["alice"]
        assert store.create_attempts["alice"] == 1


@pytest.mark.unit
class TestRetryPolicy:
    """Tests for RetryPolicy backoff."""

    def test_exponential_backoff(self):
        """Test the delay doubles per attempt."""
        policy = RetryPolicy(max_attempts=4, retry_delay=0.5)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


@pytest.mark.integration
@pytest.mark.asyncio
class TestFanoutBackends:
    """De-duplication against each store backend."""

    async def test_idempotent_on_backend(self, store):
        """Test repeated fan-out writes once per recipient."""
        watchlist = WatchlistIndex(store)
        fanout = NotificationFanout(store, watchlist, discussions=DiscussionDirectory(store))
        await watchlist.watch("alice", "/subjects/1")

        await fanout.fanout(approval_event())
        again = await fanout.fanout(approval_event())

        assert again.written == 0
        assert len(await NotificationInbox(store).list_notifications("alice")) == 1

    @pytest.mark.sqlite
    async def test_timed_out_fanout_keeps_sqlite_usable(self, sqlite_store):
        """Test fan-outs cut short by the client timeout leave the store writable."""
        watchlist = WatchlistIndex(sqlite_store)
        fanout = NotificationFanout(sqlite_store, watchlist)
        for i in range(30):
            await watchlist.watch(f"user{i}", CONTENT_PATH)

        for k in range(1, 11):
            await fanout.fanout(approval_event(f"evt_{k}"), timeout=0.0005 * k)

        await sqlite_store.put("checks/after", {"ok": True})
        assert await sqlite_store.get("checks/after") == {"ok": True}

        result = await fanout.fanout(approval_event("evt_final"))

        assert result.failed == []
        assert result.written == 30
        assert not sqlite_store.connection.in_transaction
