"""
Services for ReviewFlow.

High-level business logic services:
- ProposalStore: Proposal lifecycle with exactly-once resolution
- AuditLog: Append-only activity records
- WatchlistIndex: Per-user watches and subscriber lookup
- NotificationFanout: De-duplicated notification writes
- FanoutDispatcher: Client or server delivery of committed events
- NotificationInbox: A user's notifications
- DiscussionDirectory: Threads and comments on content

ReviewPipeline, which wires them together, is imported from
reviewflow.services.pipeline.
"""

from reviewflow.services.audit_log import AuditLog
from reviewflow.services.discussion import DiscussionDirectory
from reviewflow.services.dispatcher import (
    ClientFanoutDispatcher,
    FanoutDispatcher,
    ServerFanoutDispatcher,
)
from reviewflow.services.notification_fanout import NotificationFanout, RetryPolicy
from reviewflow.services.notification_inbox import NotificationInbox
from reviewflow.services.outbox import OutboxRelay, OutboxWorker
from reviewflow.services.proposal_store import ProposalStore
from reviewflow.services.watchlist import (
    AncestorMatchPolicy,
    ExactMatchPolicy,
    MatchPolicy,
    WatchlistIndex,
    create_match_policy,
)

__all__ = [
    "ProposalStore",
    "AuditLog",
    "WatchlistIndex",
    "MatchPolicy",
    "AncestorMatchPolicy",
    "ExactMatchPolicy",
    "create_match_policy",
    "NotificationFanout",
    "RetryPolicy",
    "FanoutDispatcher",
    "ClientFanoutDispatcher",
    "ServerFanoutDispatcher",
    "OutboxRelay",
    "OutboxWorker",
    "NotificationInbox",
    "DiscussionDirectory",
]
