"""
ID generation utilities for ReviewFlow.

Provides consistent ID generation for all document types:
- Proposals: prop_xxx
- Activity log entries: act_xxx
- Domain events: evt_xxx
- Discussion threads / comments: thr_xxx / cmt_xxx
- Notifications: ntf_xxx (deterministic, derived from the triggering event)
"""

import hashlib
from uuid import uuid4


def generate_proposal_id() -> str:
    """
    Generate unique Proposal ID.

    Returns:
        ID in format "prop_xxx" where xxx is 12 hex characters
    """
    return f"prop_{uuid4().hex[:12]}"


def generate_activity_id() -> str:
    """
    Generate unique ActivityLog ID.

    Returns:
        ID in format "act_xxx" where xxx is 12 hex characters
    """
    return f"act_{uuid4().hex[:12]}"


def generate_event_id() -> str:
    """
    Generate unique domain event ID.

    Returns:
        ID in format "evt_xxx" where xxx is 12 hex characters
    """
    return f"evt_{uuid4().hex[:12]}"


def generate_thread_id() -> str:
    """Generate unique discussion thread ID ("thr_xxx")."""
    return f"thr_{uuid4().hex[:12]}"


def generate_comment_id() -> str:
    """Generate unique discussion comment ID ("cmt_xxx")."""
    return f"cmt_{uuid4().hex[:12]}"


def generate_notification_id(target_path: str, notification_type: str, event_id: str) -> str:
    """
    Derive a stable Notification ID from the triggering event.

    The recipient is implied by the storage location (each recipient owns a
    notification collection), so the same event always maps to the same
    document id within one recipient's collection.

    Args:
        target_path: Content path the notification is about
        notification_type: Notification type (e.g. "proposal_approved")
        event_id: ID of the triggering event

    Returns:
        ID in format "ntf_xxx" where xxx is 20 hex characters
    """
    digest = hashlib.sha256(
        f"{target_path}\x1f{notification_type}\x1f{event_id}".encode()
    ).hexdigest()
    return f"ntf_{digest[:20]}"
