"""
Outbox relay and worker.

Events are written to ``outbox/{event_id}`` by the transaction that caused
them. The relay turns a record into a fan-out and marks it delivered; the
worker runs the relay in the background for server-mode dispatch.

Delivery is at-least-once: a record can be fanned out again if the process
stops between the fan-out and the status update. NotificationFanout's
deterministic ids make the repeat a no-op.
"""

import asyncio
import contextlib

from pydantic import ValidationError as PydanticValidationError

from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.models.events import (
    CommentPosted,
    FanoutEvent,
    FanoutResult,
    OutboxRecord,
    OutboxStatus,
    ProposalResolved,
)
from reviewflow.models.proposal import utc_now
from reviewflow.services.notification_fanout import NotificationFanout, RetryPolicy
from reviewflow.utils.exceptions import ReviewFlowError
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)

OUTBOX = "outbox"


class OutboxRelay:
    """Translates outbox records into fan-outs and records their delivery."""

    def __init__(self, store: DocumentStore, fanout: NotificationFanout, notify_author: bool = True):
        """
        Initialize relay.

        Args:
            store: Document store holding the outbox collection
            fanout: Fan-out engine
            notify_author: Add the proposal author to resolution recipients
        """
        self.store = store
        self.fanout = fanout
        self.notify_author = notify_author

    def to_fanout_event(self, record: OutboxRecord) -> FanoutEvent:
        """Build the fan-out input for an outbox record."""
        event = record.event()

        if isinstance(event, ProposalResolved):
            status = event.decision.status.value
            message = f"Proposal for {event.target_path} was {status}"
            if event.reason:
                message += f": {event.reason}"
            return FanoutEvent(
                event_id=event.event_id,
                target_path=event.target_path,
                type=f"proposal_{status}",
                message=message,
                exclude_actor=event.actor,
                extra_recipients=[event.author] if self.notify_author else [],
            )

        if not isinstance(event, CommentPosted):
            raise ReviewFlowError(
                f"Outbox event {record.event_id} has no fan-out for {type(event).__name__}",
                context={"event_id": record.event_id, "kind": record.kind.value},
            )
        return FanoutEvent(
            event_id=event.event_id,
            target_path=event.target_path,
            type="discussion_comment",
            message=f"New comment on {event.target_path}: {event.excerpt}",
            exclude_actor=event.actor,
            thread_id=event.thread_id,
        )

    async def get(self, event_id: str) -> OutboxRecord | None:
        doc = await self.store.get(f"{OUTBOX}/{event_id}")
        return OutboxRecord.from_document(doc) if doc else None

    async def pending(self, limit: int | None = None) -> list[OutboxRecord]:
        """
        Undelivered records, oldest first.

        A record that no longer parses is marked failed and skipped so it
        cannot block the records queued behind it.
        """
        records = []
        for path, doc in await self.store.scan(OUTBOX):
            if doc.get("status", OutboxStatus.PENDING.value) != OutboxStatus.PENDING.value:
                continue
            try:
                records.append(OutboxRecord.from_document(doc))
            except PydanticValidationError as e:
                logger.bind(path=path, error_type=type(e).__name__).error(
                    f"Malformed outbox record {path} marked failed: {e.error_count()} error(s)"
                )
                await self.store.put(path, {**doc, "status": OutboxStatus.FAILED.value})
        records.sort(key=lambda record: record.created_at)
        return records[:limit] if limit is not None else records

    async def _update(self, event_id: str, **changes) -> OutboxRecord:
        path = f"{OUTBOX}/{event_id}"

        async def _apply(tx: Transaction) -> OutboxRecord:
            current = OutboxRecord.from_document(await tx.get(path))
            updated = current.model_copy(update={**changes, "attempts": current.attempts + 1})
            tx.put(path, updated.to_document())
            return updated

        return await self.store.run_transaction(_apply)

    async def deliver(
        self,
        record: OutboxRecord,
        timeout: float | None = None,
        retry: RetryPolicy | None = None,
    ) -> FanoutResult:
        """
        Fan out one record and mark it delivered.

        Args:
            record: Outbox record
            timeout: Optional bound on the fan-out
            retry: Optional per-recipient retry policy

        Returns:
            FanoutResult of this run
        """
        result = await self.fanout.fanout(self.to_fanout_event(record), timeout=timeout, retry=retry)
        await self._update(
            record.event_id,
            status=OutboxStatus.DELIVERED,
            delivered_at=utc_now(),
            failed_recipients=result.failed,
        )
        return result

    async def record_failure(self, record: OutboxRecord, max_attempts: int) -> OutboxRecord:
        """
        Count a failed delivery run; give the record up after ``max_attempts`` runs.
        """
        updated = await self._update(
            record.event_id,
            status=OutboxStatus.FAILED if record.attempts + 1 >= max_attempts else OutboxStatus.PENDING,
        )
        if updated.status is OutboxStatus.FAILED:
            logger.bind(event_id=record.event_id, kind=record.kind.value).error(
                f"Outbox event {record.event_id} abandoned after {max_attempts} attempts"
            )
        return updated


class OutboxWorker:
    """
    Background drain of the outbox (server-mode fan-out).

    Wakes on ``wake()`` or every ``poll_interval`` seconds, delivers pending
    records with per-recipient retries, and never blocks the actor who
    caused the event.
    """

    def __init__(
        self,
        relay: OutboxRelay,
        retry: RetryPolicy | None = None,
        poll_interval: float = 2.0,
        batch_size: int = 50,
    ):
        """
        Initialize worker.

        Args:
            relay: Outbox relay
            retry: Per-recipient retry policy (attempt ceiling also applies to whole events)
            poll_interval: Seconds between polls when not woken
            batch_size: Records drained per pass
        """
        self.relay = relay
        self.retry = retry or RetryPolicy()
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def wake(self) -> None:
        """Ask the worker to drain as soon as possible."""
        self._wakeup.set()

    async def drain_once(self) -> list[FanoutResult]:
        """
        Deliver one batch of pending records.

        Returns:
            Results of the records delivered in this pass
        """
        results = []
        for record in await self.relay.pending(limit=self.batch_size):
            with logger.contextualize(event_id=record.event_id):
                try:
                    results.append(await self.relay.deliver(record, retry=self.retry))
                except (ReviewFlowError, PydanticValidationError) as e:
                    logger.bind(error_type=type(e).__name__).warning(
                        f"Delivery of outbox event {record.event_id} failed: {e}"
                    )
                    await self.relay.record_failure(record, self.retry.max_attempts)
        return results

    async def _run(self) -> None:
        logger.info("Outbox worker started")
        while True:
            try:
                await self.drain_once()
            except ReviewFlowError as e:
                logger.error(f"Outbox drain pass failed: {e}")
            except Exception:
                logger.exception("Unexpected error in outbox drain pass")
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            self._wakeup.clear()

    async def start(self) -> None:
        """Start the background loop (idempotent)."""
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background loop."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("Outbox worker stopped")
