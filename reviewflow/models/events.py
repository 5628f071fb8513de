"""
Domain events, the outbox record they are stored as, and fan-out payloads.

An event is written to ``outbox/{event_id}`` in the same transaction as the
mutation that caused it, then drained (inline in client mode, by the worker
in server mode). Draining may happen more than once per event.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from reviewflow.models.proposal import Decision, utc_now
from reviewflow.utils.exceptions import PartialFanoutFailure


class EventKind(str, Enum):
    """Kinds of events stored in the outbox."""

    PROPOSAL_RESOLVED = "proposal_resolved"
    COMMENT_POSTED = "comment_posted"


class OutboxStatus(str, Enum):
    """Delivery status of an outbox record."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class ProposalResolved(BaseModel):
    """Emitted by a committed proposal resolution."""

    event_id: str
    proposal_id: str
    target_path: str
    decision: Decision
    actor: str
    at: datetime
    author: str
    reason: str = ""


class CommentPosted(BaseModel):
    """Emitted when a comment is added to a discussion thread."""

    event_id: str
    thread_id: str
    comment_id: str
    target_path: str
    actor: str
    at: datetime
    excerpt: str = ""


class OutboxRecord(BaseModel):
    """Durable form of a domain event, co-committed with its mutation."""

    event_id: str
    kind: EventKind
    payload: dict[str, Any]
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    delivered_at: datetime | None = None
    failed_recipients: list[str] = Field(default_factory=list)

    @classmethod
    def for_event(cls, event: ProposalResolved | CommentPosted) -> "OutboxRecord":
        kind = (
            EventKind.PROPOSAL_RESOLVED
            if isinstance(event, ProposalResolved)
            else EventKind.COMMENT_POSTED
        )
        return cls(event_id=event.event_id, kind=kind, payload=event.model_dump(mode="json"))

    def event(self) -> ProposalResolved | CommentPosted:
        """Rebuild the typed domain event."""
        if self.kind is EventKind.PROPOSAL_RESOLVED:
            return ProposalResolved.model_validate(self.payload)
        return CommentPosted.model_validate(self.payload)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "OutboxRecord":
        return cls.model_validate(data)


class FanoutEvent(BaseModel):
    """Input of a fan-out: what happened, where, and who triggered it."""

    event_id: str
    target_path: str
    type: str
    message: str
    exclude_actor: str | None = None
    extra_recipients: list[str] = Field(default_factory=list)
    thread_id: str | None = None

    @property
    def is_discussion(self) -> bool:
        return self.type.startswith("discussion")


class FanoutResult(BaseModel):
    """Outcome of one fan-out call."""

    event_id: str
    written: int = 0
    duplicates: int = 0
    failed: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        """
        Raise PartialFanoutFailure if any recipient was not notified.

        Raises:
            PartialFanoutFailure: With the list of failed recipients
        """
        if self.failed:
            raise PartialFanoutFailure(
                f"{len(self.failed)} recipient(s) not notified for event {self.event_id}",
                failed_recipients=self.failed,
                context={"event_id": self.event_id, "written": self.written},
            )


class DispatchReport(BaseModel):
    """What the dispatcher did with an event."""

    event_id: str
    mode: str
    queued: bool = False
    result: FanoutResult | None = None
    error: str | None = None
