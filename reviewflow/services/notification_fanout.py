"""
Notification Fanout - One notification per interested recipient.

Recipients of an event:
- watchers of the target address (per the WatchlistIndex match policy)
- explicit extra recipients (e.g. the proposal author)
- thread participants, for discussion events when enabled
minus the actor who triggered the event.

Each notification id is derived from (target_path, type, event_id), and
written with insert-if-absent into the recipient's own collection. Running
the same event twice therefore writes nothing the second time.
"""

import asyncio

from pydantic import BaseModel, Field

from reviewflow.core.document_store.base import DocumentStore
from reviewflow.models.address import ContentAddress
from reviewflow.models.events import FanoutEvent, FanoutResult
from reviewflow.models.notify import NotificationDoc
from reviewflow.services.discussion import DiscussionDirectory
from reviewflow.services.watchlist import WatchlistIndex
from reviewflow.utils.exceptions import TransientStorageError
from reviewflow.utils.id_generator import generate_notification_id
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)


class RetryPolicy(BaseModel):
    """Per-recipient retry of transient write failures."""

    max_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=0.5, ge=0.0)

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff before the next attempt (attempt is 1-based)."""
        return self.retry_delay * (2 ** (attempt - 1))


class NotificationFanout:
    """Computes recipients for an event and writes de-duplicated notifications."""

    def __init__(
        self,
        store: DocumentStore,
        watchlist: WatchlistIndex,
        discussions: DiscussionDirectory | None = None,
        notify_thread_participants: bool = True,
    ):
        """
        Initialize fan-out engine.

        Args:
            store: Document store holding notification collections
            watchlist: Subscriber lookup
            discussions: Optional thread participant source
            notify_thread_participants: Include participants for discussion events
        """
        self.store = store
        self.watchlist = watchlist
        self.discussions = discussions
        self.notify_thread_participants = notify_thread_participants

    async def recipients_for(self, event: FanoutEvent) -> set[str]:
        """
        Compute the de-duplicated recipient set of an event.

        Args:
            event: Fan-out event

        Returns:
            Set of user IDs, never containing the excluded actor
        """
        recipients = await self.watchlist.subscribers_of(event.target_path)
        recipients.update(event.extra_recipients)

        if (
            event.is_discussion
            and event.thread_id
            and self.notify_thread_participants
            and self.discussions is not None
        ):
            recipients |= await self.discussions.participants(event.thread_id)

        if event.exclude_actor:
            recipients.discard(event.exclude_actor)
        return {user for user in recipients if user and "/" not in user}

    def build_notification(self, event: FanoutEvent) -> NotificationDoc:
        """Notification document for an event (identical for every recipient)."""
        target_path = ContentAddress.parse(event.target_path).path
        return NotificationDoc(
            id=generate_notification_id(target_path, event.type, event.event_id),
            type=event.type,
            target_path=target_path,
            message=event.message,
            event_id=event.event_id,
        )

    async def _deliver(
        self, recipient: str, notification: NotificationDoc, retry: RetryPolicy | None
    ) -> bool:
        """
        Write one recipient's notification.

        Returns:
            True if written, False if it already existed
        """
        path = f"notifications/{recipient}/items/{notification.id}"
        attempts = retry.max_attempts if retry else 1

        for attempt in range(1, attempts + 1):
            try:
                return await self.store.create(path, notification.to_document())
            except TransientStorageError as e:
                if attempt >= attempts:
                    raise
                delay = retry.delay_for(attempt)
                logger.bind(recipient=recipient, event_id=notification.event_id).warning(
                    f"Notification write for {recipient} failed "
                    f"(attempt {attempt}/{attempts}): {e}. Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
        return False

    async def fanout(
        self,
        event: FanoutEvent,
        timeout: float | None = None,
        retry: RetryPolicy | None = None,
    ) -> FanoutResult:
        """
        Write one notification per recipient of an event.

        A failing recipient never stops the others. Recipients still in flight
        when ``timeout`` expires are cancelled and reported as failed; writes
        that already completed are kept.

        Args:
            event: Fan-out event
            timeout: Optional bound on the whole call, in seconds
            retry: Optional per-recipient retry of transient failures

        Returns:
            FanoutResult with new, duplicate and failed counts
        """
        recipients = sorted(await self.recipients_for(event))
        result = FanoutResult(event_id=event.event_id)
        if not recipients:
            logger.debug(f"No recipients for event {event.event_id}")
            return result

        notification = self.build_notification(event)
        tasks = {
            asyncio.create_task(self._deliver(recipient, notification, retry)): recipient
            for recipient in recipients
        }
        done, pending = await asyncio.wait(tasks, timeout=timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.bind(event_id=event.event_id, timeout=timeout).warning(
                f"Fan-out for {event.event_id} timed out, {len(pending)} recipient(s) not notified"
            )

        failed = [tasks[task] for task in pending]
        for task in done:
            recipient = tasks[task]
            error = task.exception()
            if error is not None:
                failed.append(recipient)
                logger.bind(
                    recipient=recipient, event_id=event.event_id, error_type=type(error).__name__
                ).error(f"Notification for {recipient} permanently failed: {error}")
            elif task.result():
                result.written += 1
            else:
                result.duplicates += 1

        result.failed = sorted(failed)
        logger.bind(event_id=event.event_id, type=event.type).info(
            f"Fan-out {event.event_id}: {result.written} written, "
            f"{result.duplicates} duplicate, {len(result.failed)} failed"
        )
        return result
