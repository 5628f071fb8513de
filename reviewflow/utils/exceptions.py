"""
Custom exception hierarchy for ReviewFlow.

Provides structured error types for the review pipeline.
All exceptions inherit from ReviewFlowError for easy catching.
"""


class ReviewFlowError(Exception):
    """
    Base exception for all ReviewFlow errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize ReviewFlow error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ValidationError(ReviewFlowError):
    """
    Validation errors.
    Raised when input is malformed. The caller's fault, never retried.
    """

    pass


class NotFoundError(ReviewFlowError):
    """
    Resource not found errors.
    Raised when a referenced document (proposal, notification, thread) doesn't exist.
    """

    pass


class ConflictError(ReviewFlowError):
    """
    State conflict errors.
    Raised when a proposal that already reached a terminal state is resolved again,
    or when a locked thread receives a comment. The user must be told the action is stale.
    """

    pass


class StoreError(ReviewFlowError):
    """
    Base exception for document store operations.
    """

    pass


class TransientStorageError(StoreError):
    """
    Transient store faults.
    Raised on network/store faults and transaction contention. Safe to retry with backoff.
    """

    pass


class ConfigurationError(ReviewFlowError):
    """
    Configuration errors.
    Raised when configuration is invalid or names an unknown backend/mode.
    """

    pass


class PartialFanoutFailure(ReviewFlowError):
    """
    Raised when some recipients of a fan-out were not notified.

    The triggering action (e.g. proposal resolution) is still successful;
    this only carries the recipients that did not get a notification.
    """

    def __init__(
        self, message: str, failed_recipients: list[str], context: dict | None = None
    ):
        super().__init__(message, context)
        self.failed_recipients = list(failed_recipients)
