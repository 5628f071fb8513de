"""
Discussion thread and comment models.

Owned by the discussion feature; the review pipeline only reads them to find
thread participants.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from reviewflow.models.address import ContentAddress
from reviewflow.models.proposal import utc_now


class ThreadStatus(str, Enum):
    OPEN = "open"
    LOCKED = "locked"


class DiscussionThreadDoc(BaseModel):
    """A discussion thread attached to a subject, type or content node."""

    id: str
    subject_id: str
    type_id: str | None = None
    content_id: str | None = None
    title: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)
    last_activity_at: datetime = Field(default_factory=utc_now)
    status: ThreadStatus = ThreadStatus.OPEN

    @property
    def address(self) -> ContentAddress:
        return ContentAddress.for_content(self.subject_id, self.type_id, self.content_id)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "DiscussionThreadDoc":
        return cls.model_validate(data)


class DiscussionCommentDoc(BaseModel):
    """A comment in a thread (``discussions/{thread}/comments/{id}``)."""

    id: str
    text: str
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    edited: bool = False
    parent_id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "DiscussionCommentDoc":
        return cls.model_validate(data)
