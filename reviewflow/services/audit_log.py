"""
Audit Log - Append-only writer for mutating actions.

Every mutating action against a ContentAddress becomes one ActivityLogDoc
under ``activityLogs/{id}``. Records are never updated or deleted.

Delivery note: the log does not de-duplicate. Resolutions write their record
inside the resolving transaction (exactly one per commit), but a caller that
retries ``record`` after an ambiguous storage failure can produce a second
row for the same action. Audit favors completeness over exactly-once.
"""

from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.models.activity import ActivityAction, ActivityLogDoc
from reviewflow.models.address import ContentAddress
from reviewflow.utils.exceptions import StoreError, TransientStorageError, ValidationError
from reviewflow.utils.id_generator import generate_activity_id
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)

COLLECTION = "activityLogs"


class AuditLog:
    """Append-only activity log writer."""

    def __init__(self, store: DocumentStore):
        """
        Initialize audit log.

        Args:
            store: Document store holding the activityLogs collection
        """
        self.store = store

    def build_entry(
        self,
        actor: str,
        action: ActivityAction | str,
        target_path: str | ContentAddress,
        diff_summary: str | None = None,
        ip: str | None = None,
    ) -> ActivityLogDoc:
        """
        Validate input and build (but do not write) an activity entry.

        Raises:
            ValidationError: If actor, action or target path is malformed
        """
        if not actor or not str(actor).strip():
            raise ValidationError("actor is required for audit records")
        try:
            action = ActivityAction(action)
        except ValueError as e:
            raise ValidationError(
                f"Unknown audit action: {action}", context={"action": str(action)}
            ) from e

        return ActivityLogDoc(
            id=generate_activity_id(),
            actor=actor,
            action=action,
            target_path=ContentAddress.parse(target_path).path,
            diff_summary=diff_summary,
            ip=ip,
        )

    async def record(
        self,
        actor: str,
        action: ActivityAction | str,
        target_path: str | ContentAddress,
        diff_summary: str | None = None,
        ip: str | None = None,
    ) -> ActivityLogDoc:
        """
        Append one activity record.

        Args:
            actor: Acting user ID
            action: One of create, update, delete, approve, reject
            target_path: ContentAddress acted upon
            diff_summary: Optional human-readable change summary
            ip: Optional client address

        Returns:
            The written ActivityLogDoc

        Raises:
            ValidationError: If input is malformed
            TransientStorageError: If the store failed (not retried here)
        """
        entry = self.build_entry(actor, action, target_path, diff_summary, ip)

        try:
            await self.store.put(f"{COLLECTION}/{entry.id}", entry.to_document())
        except TransientStorageError:
            raise
        except StoreError as e:
            raise TransientStorageError(
                f"Failed to write audit record: {e}", context={"activity_id": entry.id}
            ) from e

        logger.bind(activity_id=entry.id, action=entry.action.value).info(
            f"Audit: {entry.actor} {entry.action.value} {entry.target_path}"
        )
        return entry

    def record_in(
        self,
        transaction: Transaction,
        actor: str,
        action: ActivityAction | str,
        target_path: str | ContentAddress,
        diff_summary: str | None = None,
        ip: str | None = None,
    ) -> ActivityLogDoc:
        """
        Stage one activity record inside a caller's transaction.

        The record is committed, or discarded, together with the caller's writes.

        Returns:
            The staged ActivityLogDoc
        """
        entry = self.build_entry(actor, action, target_path, diff_summary, ip)
        transaction.put(f"{COLLECTION}/{entry.id}", entry.to_document())
        return entry

    async def entries_for(self, target_path: str | ContentAddress) -> list[ActivityLogDoc]:
        """
        Scan the log for records about one ContentAddress, oldest first.

        Read helper for consumers outside the write path.
        """
        path = ContentAddress.parse(target_path).path
        entries = [
            ActivityLogDoc.from_document(doc) for _, doc in await self.store.scan(COLLECTION)
        ]
        return sorted(
            (entry for entry in entries if entry.target_path == path),
            key=lambda entry: entry.created_at,
        )
