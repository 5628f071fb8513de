"""
Review Pipeline - Wires the review components together.

Brings together:
- Document store (from StoreConfig)
- ProposalStore & AuditLog
- WatchlistIndex with the configured match policy
- NotificationFanout, the outbox relay and the configured dispatcher
- NotificationInbox & DiscussionDirectory

It is the entry point of an acting session: each call takes the actor's
identity explicitly.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from reviewflow.config import Config
from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.core.factory import DispatcherFactory, DocumentStoreFactory
from reviewflow.models.address import ContentAddress
from reviewflow.models.discussion import DiscussionCommentDoc, DiscussionThreadDoc
from reviewflow.models.events import CommentPosted, DispatchReport, FanoutResult, OutboxRecord
from reviewflow.models.notify import WatchlistItemDoc
from reviewflow.models.proposal import ChangeType, Decision, ProposalDoc
from reviewflow.services.audit_log import AuditLog
from reviewflow.services.discussion import COLLECTION as DISCUSSIONS
from reviewflow.services.discussion import DiscussionDirectory
from reviewflow.services.notification_fanout import NotificationFanout
from reviewflow.services.notification_inbox import NotificationInbox
from reviewflow.services.outbox import OUTBOX, OutboxRelay
from reviewflow.services.proposal_store import ProposalStore
from reviewflow.services.watchlist import WatchlistIndex, create_match_policy
from reviewflow.utils.exceptions import NotFoundError
from reviewflow.utils.id_generator import generate_event_id
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)

EXCERPT_LENGTH = 120


class ResolutionResult(BaseModel):
    """A committed resolution and what happened to its notifications."""

    proposal: ProposalDoc
    dispatch: DispatchReport


class CommentResult(BaseModel):
    """A committed comment and what happened to its notifications."""

    comment: DiscussionCommentDoc
    dispatch: DispatchReport


class ReviewPipeline:
    """
    Review pipeline integrating all components.

    Features:
    - Submit and resolve proposals with exactly-once status change and audit
    - Watch / unwatch content addresses
    - Notify watchers (client or server fan-out)
    - Post discussion comments that notify watchers and participants
    - Read and mark notifications
    """

    def __init__(self, config: Config | None = None, store: DocumentStore | None = None):
        """
        Initialize Review Pipeline.

        Args:
            config: Configuration object (defaults if omitted)
            store: Optional pre-built document store (otherwise built from config.store)
        """
        self.config = config or Config()
        flags = self.config.flags

        self.store = store or DocumentStoreFactory.create(self.config.store)
        self.audit_log = AuditLog(self.store)
        self.proposals = ProposalStore(
            self.store, self.audit_log, audit_submissions=flags.audit_submissions
        )
        self.watchlist = WatchlistIndex(self.store, policy=create_match_policy(flags.watch_match))
        self.discussions = DiscussionDirectory(self.store)
        self.inbox = NotificationInbox(self.store)
        self.fanout = NotificationFanout(
            self.store,
            self.watchlist,
            discussions=self.discussions,
            notify_thread_participants=flags.notify_thread_participants,
        )
        self.relay = OutboxRelay(self.store, self.fanout, notify_author=flags.notify_author)
        self.dispatcher = DispatcherFactory.create(self.config, self.relay)

    async def initialize(self) -> None:
        """Initialize the document store."""
        logger.info("Initializing Review Pipeline")
        await self.store.initialize()
        logger.info(
            f"Review Pipeline ready (fan-out: {self.dispatcher.mode}, "
            f"watch match: {self.watchlist.policy.name})"
        )

    async def start(self) -> None:
        """Start background delivery (server fan-out mode only)."""
        await self.dispatcher.start()

    # PROPOSALS

    async def submit(
        self,
        target_path: str | ContentAddress,
        change_type: ChangeType | str,
        payload: Any,
        reason: str,
        actor: str,
    ) -> ProposalDoc:
        """Submit a change proposal. See ProposalStore.submit."""
        return await self.proposals.submit(target_path, change_type, payload, reason, actor)

    async def resolve(
        self,
        proposal_id: str,
        decision: Decision | str,
        actor: str,
        at: datetime | None = None,
        note: str | None = None,
    ) -> ResolutionResult:
        """
        Approve or reject a proposal, then hand its event to the dispatcher.

        Errors from the resolution itself (ValidationError, NotFoundError,
        ConflictError, TransientStorageError) propagate. Notification problems
        never do: the resolution is committed by then and they are reported in
        ``result.dispatch``.
        """
        proposal, record = await self.proposals.resolve_with_event(
            proposal_id, decision, actor, at=at, note=note
        )
        with logger.contextualize(event_id=record.event_id, proposal_id=proposal.id, actor=actor):
            report = await self.dispatcher.dispatch(record)
        return ResolutionResult(proposal=proposal, dispatch=report)

    # WATCHLIST

    async def watch(self, user: str, target_path: str | ContentAddress) -> WatchlistItemDoc:
        return await self.watchlist.watch(user, target_path)

    async def unwatch(self, user: str, target_path: str | ContentAddress) -> None:
        await self.watchlist.unwatch(user, target_path)

    async def toggle_watch(self, user: str, target_path: str | ContentAddress) -> bool:
        return await self.watchlist.toggle(user, target_path)

    # DISCUSSIONS

    async def post_comment(
        self,
        thread_id: str,
        actor: str,
        text: str,
        parent_id: str | None = None,
    ) -> CommentResult:
        """
        Add a comment and notify watchers of the thread's address and its participants.

        The comment and its outbox event commit together.

        Raises:
            NotFoundError: If the thread does not exist
            ValidationError: If text or actor is missing
            ConflictError: If the thread is locked
        """

        async def _post(tx: Transaction) -> tuple[DiscussionCommentDoc, OutboxRecord]:
            doc = await tx.get(f"{DISCUSSIONS}/{thread_id}")
            if doc is None:
                raise NotFoundError(
                    f"Thread not found: {thread_id}", context={"thread_id": thread_id}
                )
            thread = DiscussionThreadDoc.from_document(doc)
            comment = self.discussions.add_comment_in(
                tx, thread, text, actor, parent_id=parent_id
            )
            event = CommentPosted(
                event_id=generate_event_id(),
                thread_id=thread.id,
                comment_id=comment.id,
                target_path=self.discussions.thread_address(thread).path,
                actor=actor,
                at=comment.created_at,
                excerpt=text.strip()[:EXCERPT_LENGTH],
            )
            record = OutboxRecord.for_event(event)
            tx.put(f"{OUTBOX}/{event.event_id}", record.to_document())
            return comment, record

        if not thread_id or "/" in thread_id:
            raise NotFoundError(f"Thread not found: {thread_id}", context={"thread_id": thread_id})
        comment, record = await self.store.run_transaction(_post)
        logger.bind(thread_id=thread_id, actor=actor).info(
            f"Comment {comment.id} posted to thread {thread_id} by {actor}"
        )
        with logger.contextualize(event_id=record.event_id, thread_id=thread_id, actor=actor):
            report = await self.dispatcher.dispatch(record)
        return CommentResult(comment=comment, dispatch=report)

    # OUTBOX

    async def drain_outbox(self) -> list[FanoutResult]:
        """
        Deliver every pending outbox event now.

        Used to recover events a failed client-mode fan-out left pending.
        """
        results = []
        for record in await self.relay.pending():
            results.append(
                await self.relay.deliver(record, timeout=self.config.fanout.client_timeout)
            )
        logger.info(f"Drained {len(results)} pending outbox event(s)")
        return results

    # LIFECYCLE MANAGEMENT

    async def close(self) -> None:
        """Stop background delivery and close the store."""
        logger.info("Shutting down Review Pipeline")
        await self.dispatcher.stop()
        await self.store.close()
        logger.info("Review Pipeline shutdown complete")
