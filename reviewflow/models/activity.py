"""
Activity log model (append-only audit record).
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from reviewflow.models.address import ContentAddress
from reviewflow.models.proposal import utc_now


class ActivityAction(str, Enum):
    """Mutating actions that are audited."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"


class ActivityLogDoc(BaseModel):
    """
    Immutable record of one mutating action against a ContentAddress.

    Created once, never mutated or deleted.
    """

    id: str = Field(..., description="Unique activity ID (act_xxx)")
    actor: str
    action: ActivityAction
    target_path: str
    diff_summary: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    ip: str | None = None

    @field_validator("target_path")
    @classmethod
    def _normalize_target(cls, value: str) -> str:
        return ContentAddress.parse(value).path

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "ActivityLogDoc":
        return cls.model_validate(data)
