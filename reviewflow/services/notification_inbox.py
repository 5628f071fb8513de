"""
Notification Inbox - A user's view of their own notifications.
"""

from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.models.notify import NotificationDoc
from reviewflow.utils.exceptions import NotFoundError, ValidationError
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationInbox:
    """Reads and read-state updates on ``notifications/{user}/items``."""

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def _items(user: str) -> str:
        if not user or "/" in user:
            raise ValidationError(f"Invalid user ID: {user!r}", context={"user": user})
        return f"notifications/{user}/items"

    async def _all(self, user: str) -> list[NotificationDoc]:
        docs = await self.store.scan(self._items(user))
        notifications = [NotificationDoc.from_document(doc) for _, doc in docs]
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)

    async def list_notifications(
        self, user: str, limit: int | None = 10, unread_only: bool = False
    ) -> list[NotificationDoc]:
        """
        Latest notifications of a user, newest first.

        Args:
            user: Recipient user ID
            limit: Maximum number returned (None for all)
            unread_only: Skip notifications already read

        Returns:
            List of notifications
        """
        notifications = await self._all(user)
        if unread_only:
            notifications = [n for n in notifications if not n.read]
        return notifications[:limit] if limit is not None else notifications

    async def unread_count(self, user: str) -> int:
        return sum(1 for n in await self._all(user) if not n.read)

    async def mark_read(self, user: str, notification_id: str, read: bool = True) -> NotificationDoc:
        """
        Set the read flag of one notification.

        Raises:
            NotFoundError: If the user has no such notification
        """
        if not notification_id or "/" in notification_id:
            raise NotFoundError(
                f"Notification not found: {notification_id}",
                context={"user": user, "notification_id": notification_id},
            )
        path = f"{self._items(user)}/{notification_id}"

        async def _mark(tx: Transaction) -> NotificationDoc:
            doc = await tx.get(path)
            if doc is None:
                raise NotFoundError(
                    f"Notification not found: {notification_id}",
                    context={"user": user, "notification_id": notification_id},
                )
            notification = NotificationDoc.from_document(doc).model_copy(update={"read": read})
            tx.put(path, notification.to_document())
            return notification

        return await self.store.run_transaction(_mark)

    async def mark_all_read(self, user: str) -> int:
        """
        Mark every unread notification of a user as read.

        Returns:
            Number of notifications changed
        """
        collection = self._items(user)
        unread = [n for n in await self._all(user) if not n.read]

        async def _mark_all(tx: Transaction) -> int:
            changed = 0
            for notification in unread:
                path = f"{collection}/{notification.id}"
                doc = await tx.get(path)
                if doc is None or doc.get("read"):
                    continue
                tx.put(path, {**doc, "read": True})
                changed += 1
            return changed

        changed = await self.store.run_transaction(_mark_all)
        logger.debug(f"Marked {changed} notification(s) read for {user}")
        return changed
