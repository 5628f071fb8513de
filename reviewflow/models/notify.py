"""
Watchlist and notification models.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from reviewflow.models.proposal import utc_now


class WatchlistItemDoc(BaseModel):
    """
    One watched ContentAddress of one user.

    Identity is (owner, target_key); the document lives at
    ``watchlists/{owner}/items/{target_key}``. Never mutated.
    """

    owner: str
    target_key: str
    target_path: str
    created_at: datetime = Field(default_factory=utc_now)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "WatchlistItemDoc":
        return cls.model_validate(data)


class NotificationDoc(BaseModel):
    """
    A notification in one recipient's collection (``notifications/{user}/items/{id}``).

    The id is derived from the triggering event, so re-running a fan-out for
    the same event addresses the same document. Only ``read`` is mutable.
    """

    id: str = Field(..., description="Deterministic notification ID (ntf_xxx)")
    type: str
    target_path: str
    message: str
    event_id: str
    created_at: datetime = Field(default_factory=utc_now)
    read: bool = False

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "NotificationDoc":
        return cls.model_validate(data)
