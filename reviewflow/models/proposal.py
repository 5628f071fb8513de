"""
Proposal model with a terminal-state lifecycle.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from reviewflow.models.address import ContentAddress


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class ChangeType(str, Enum):
    """Kinds of change a contributor can propose."""

    MODIFY = "modify"
    ADD = "add"
    DELETE = "delete"
    FLAG_ERROR = "flag_error"


class ProposalStatus(str, Enum):
    """Proposal lifecycle status. Anything but PENDING is terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not ProposalStatus.PENDING


class Decision(str, Enum):
    """Reviewer decision on a pending proposal."""

    APPROVE = "approve"
    REJECT = "reject"

    @property
    def status(self) -> ProposalStatus:
        """Status a proposal ends in after this decision."""
        if self is Decision.APPROVE:
            return ProposalStatus.APPROVED
        return ProposalStatus.REJECTED


class ProposalDoc(BaseModel):
    """
    A suggested change to content, awaiting a reviewer decision.

    Invariants:
    - approved_by / approved_at are set if and only if status is not pending
    - once status leaves pending it never changes again
    - never physically deleted (kept for audit)
    """

    id: str = Field(..., description="Unique proposal ID (prop_xxx)")
    target_path: str = Field(..., description="ContentAddress the change applies to")
    change_type: ChangeType
    payload: Any = Field(default=None, description="Opaque change payload")
    reason: str = ""
    status: ProposalStatus = ProposalStatus.PENDING
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)
    approved_by: str | None = Field(default=None, description="Resolving reviewer")
    approved_at: datetime | None = Field(default=None, description="Resolution timestamp")
    rejection_reason: str | None = None

    @field_validator("target_path")
    @classmethod
    def _normalize_target(cls, value: str) -> str:
        return ContentAddress.parse(value).path

    @model_validator(mode="after")
    def _check_resolution_fields(self) -> "ProposalDoc":
        resolved = self.approved_by is not None and self.approved_at is not None
        unresolved = self.approved_by is None and self.approved_at is None
        if self.status.is_terminal and not resolved:
            raise ValueError("resolved proposals require approved_by and approved_at")
        if not self.status.is_terminal and not unresolved:
            raise ValueError("pending proposals cannot carry approved_by/approved_at")
        return self

    @property
    def address(self) -> ContentAddress:
        return ContentAddress.parse(self.target_path)

    def to_document(self) -> dict[str, Any]:
        """Serialize for the document store."""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "ProposalDoc":
        return cls.model_validate(data)
