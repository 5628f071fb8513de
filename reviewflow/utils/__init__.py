"""Utility modules for ReviewFlow."""

from reviewflow.utils.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PartialFanoutFailure,
    ReviewFlowError,
    StoreError,
    TransientStorageError,
    ValidationError,
)
from reviewflow.utils.id_generator import (
    generate_activity_id,
    generate_comment_id,
    generate_event_id,
    generate_notification_id,
    generate_proposal_id,
    generate_thread_id,
)
from reviewflow.utils.logger import get_logger, setup_logging

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    # ID Generators
    "generate_proposal_id",
    "generate_activity_id",
    "generate_event_id",
    "generate_thread_id",
    "generate_comment_id",
    "generate_notification_id",
    # Exceptions
    "ReviewFlowError",
    "StoreError",
    "TransientStorageError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ConfigurationError",
    "PartialFanoutFailure",
]
