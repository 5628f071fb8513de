"""
Data models for ReviewFlow.

Core models:
- ContentAddress: Path key into the subject/type/content hierarchy
- ProposalDoc, ChangeType, ProposalStatus, Decision: Proposal lifecycle
- ActivityLogDoc, ActivityAction: Append-only audit records
- WatchlistItemDoc, NotificationDoc: Per-user watch items and notifications
- ProposalResolved, CommentPosted, OutboxRecord: Domain events and their outbox form
- FanoutEvent, FanoutResult, DispatchReport: Fan-out input and outcome
- DiscussionThreadDoc, DiscussionCommentDoc: Discussion data (participants source)
"""

from reviewflow.models.activity import ActivityAction, ActivityLogDoc
from reviewflow.models.address import ContentAddress
from reviewflow.models.discussion import DiscussionCommentDoc, DiscussionThreadDoc, ThreadStatus
from reviewflow.models.events import (
    CommentPosted,
    DispatchReport,
    EventKind,
    FanoutEvent,
    FanoutResult,
    OutboxRecord,
    OutboxStatus,
    ProposalResolved,
)
from reviewflow.models.notify import NotificationDoc, WatchlistItemDoc
from reviewflow.models.proposal import (
    ChangeType,
    Decision,
    ProposalDoc,
    ProposalStatus,
    utc_now,
)

__all__ = [
    # Addressing
    "ContentAddress",
    # Proposal models
    "ProposalDoc",
    "ChangeType",
    "ProposalStatus",
    "Decision",
    "utc_now",
    # Audit models
    "ActivityLogDoc",
    "ActivityAction",
    # Watch / notification models
    "WatchlistItemDoc",
    "NotificationDoc",
    # Events
    "EventKind",
    "OutboxStatus",
    "OutboxRecord",
    "ProposalResolved",
    "CommentPosted",
    "FanoutEvent",
    "FanoutResult",
    "DispatchReport",
    # Discussion models
    "DiscussionThreadDoc",
    "DiscussionCommentDoc",
    "ThreadStatus",
]
