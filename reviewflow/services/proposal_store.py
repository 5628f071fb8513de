"""
Proposal Store - Owns the proposal lifecycle.

pending -> approved | rejected, exactly once.

``resolve`` is a single transaction that reads the current status, writes the
new status, stages the audit record and stages the outbox event. Two reviewers
racing on the same proposal both run the transaction; the first commit wins
and the loser's re-run sees a terminal status and raises ConflictError.
"""

from datetime import datetime
from typing import Any

from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.models.activity import ActivityAction
from reviewflow.models.address import ContentAddress
from reviewflow.models.events import OutboxRecord, ProposalResolved
from reviewflow.models.proposal import (
    ChangeType,
    Decision,
    ProposalDoc,
    ProposalStatus,
    utc_now,
)
from reviewflow.services.audit_log import AuditLog
from reviewflow.services.outbox import OUTBOX
from reviewflow.utils.exceptions import ConflictError, NotFoundError, ValidationError
from reviewflow.utils.id_generator import generate_event_id, generate_proposal_id
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)

COLLECTION = "proposals"


class ProposalStore:
    """Proposal persistence with a transactional double-resolution guard."""

    def __init__(self, store: DocumentStore, audit_log: AuditLog, audit_submissions: bool = True):
        """
        Initialize proposal store.

        Args:
            store: Document store
            audit_log: Audit writer used inside proposal transactions
            audit_submissions: Also write a "create" record when a proposal is submitted
        """
        self.store = store
        self.audit_log = audit_log
        self.audit_submissions = audit_submissions

    @staticmethod
    def _path(proposal_id: str) -> str:
        if not proposal_id or "/" in proposal_id:
            raise NotFoundError(
                f"Proposal not found: {proposal_id}", context={"proposal_id": proposal_id}
            )
        return f"{COLLECTION}/{proposal_id}"

    async def submit(
        self,
        target_path: str | ContentAddress,
        change_type: ChangeType | str,
        payload: Any,
        reason: str,
        actor: str,
    ) -> ProposalDoc:
        """
        Create a pending proposal.

        Args:
            target_path: ContentAddress the change applies to
            change_type: modify, add, delete or flag_error
            payload: Opaque change payload
            reason: Contributor's explanation
            actor: Submitting user ID

        Returns:
            The created ProposalDoc

        Raises:
            ValidationError: If target path is empty, change type unknown, or actor missing or path-like
        """
        address = ContentAddress.parse(target_path)
        try:
            change_type = ChangeType(change_type)
        except ValueError as e:
            raise ValidationError(
                f"Unknown change type: {change_type}",
                context={"change_type": str(change_type)},
            ) from e
        if not actor or not str(actor).strip() or "/" in str(actor):
            raise ValidationError(
                "a valid actor is required to submit a proposal", context={"actor": actor}
            )

        proposal = ProposalDoc(
            id=generate_proposal_id(),
            target_path=address.path,
            change_type=change_type,
            payload=payload,
            reason=reason or "",
            created_by=actor,
        )

        async def _submit(tx: Transaction) -> ProposalDoc:
            tx.put(self._path(proposal.id), proposal.to_document())
            if self.audit_submissions:
                self.audit_log.record_in(
                    tx,
                    actor=actor,
                    action=ActivityAction.CREATE,
                    target_path=address,
                    diff_summary=f"Proposal submitted ({change_type.value}): {proposal.reason}",
                )
            return proposal

        await self.store.run_transaction(_submit)
        logger.bind(proposal_id=proposal.id, actor=actor, change_type=change_type.value).info(
            f"Proposal {proposal.id} submitted for {address.path}"
        )
        return proposal

    async def resolve(
        self,
        proposal_id: str,
        decision: Decision | str,
        actor: str,
        at: datetime | None = None,
        note: str | None = None,
    ) -> ProposalDoc:
        """
        Approve or reject a pending proposal.

        See resolve_with_event for arguments and errors.
        """
        proposal, _ = await self.resolve_with_event(proposal_id, decision, actor, at=at, note=note)
        return proposal

    async def resolve_with_event(
        self,
        proposal_id: str,
        decision: Decision | str,
        actor: str,
        at: datetime | None = None,
        note: str | None = None,
    ) -> tuple[ProposalDoc, OutboxRecord]:
        """
        Approve or reject a pending proposal and return the committed event.

        Status change, audit record and outbox event commit together.

        Args:
            proposal_id: Proposal to resolve
            decision: approve or reject
            actor: Reviewer user ID
            at: Resolution time (defaults to now)
            note: Optional reviewer note (stored as rejection_reason on rejects)

        Returns:
            Tuple of (resolved ProposalDoc, its outbox record)

        Raises:
            ValidationError: If decision or actor is malformed
            NotFoundError: If the proposal does not exist
            ConflictError: If the proposal was already resolved
        """
        try:
            decision = Decision(decision)
        except ValueError as e:
            raise ValidationError(
                f"Unknown decision: {decision}", context={"decision": str(decision)}
            ) from e
        if not actor or not str(actor).strip() or "/" in str(actor):
            raise ValidationError(
                "a valid actor is required to resolve a proposal", context={"actor": actor}
            )
        resolved_at = at or utc_now()
        path = self._path(proposal_id)

        async def _resolve(tx: Transaction) -> tuple[ProposalDoc, OutboxRecord]:
            current = await tx.get(path)
            if current is None:
                raise NotFoundError(
                    f"Proposal not found: {proposal_id}", context={"proposal_id": proposal_id}
                )
            proposal = ProposalDoc.from_document(current)
            if proposal.status.is_terminal:
                raise ConflictError(
                    f"Proposal {proposal_id} is already {proposal.status.value}",
                    context={
                        "proposal_id": proposal_id,
                        "status": proposal.status.value,
                        "approved_by": proposal.approved_by,
                    },
                )

            resolved = proposal.model_copy(
                update={
                    "status": decision.status,
                    "approved_by": actor,
                    "approved_at": resolved_at,
                    "rejection_reason": note if decision is Decision.REJECT else None,
                }
            )
            tx.put(path, resolved.to_document())

            self.audit_log.record_in(
                tx,
                actor=actor,
                action=ActivityAction(decision.value),
                target_path=resolved.target_path,
                diff_summary=f"Proposal {decision.status.value}: {resolved.reason or 'No reason'}",
            )

            event = ProposalResolved(
                event_id=generate_event_id(),
                proposal_id=resolved.id,
                target_path=resolved.target_path,
                decision=decision,
                actor=actor,
                at=resolved_at,
                author=resolved.created_by,
                reason=resolved.reason,
            )
            record = OutboxRecord.for_event(event)
            tx.put(f"{OUTBOX}/{event.event_id}", record.to_document())
            return resolved, record

        resolved, record = await self.store.run_transaction(_resolve)
        logger.bind(proposal_id=proposal_id, actor=actor, decision=decision.value).info(
            f"Proposal {proposal_id} {resolved.status.value} by {actor}"
        )
        return resolved, record

    async def get(self, proposal_id: str) -> ProposalDoc:
        """
        Fetch a proposal.

        Raises:
            NotFoundError: If the proposal does not exist
        """
        doc = await self.store.get(self._path(proposal_id))
        if doc is None:
            raise NotFoundError(
                f"Proposal not found: {proposal_id}", context={"proposal_id": proposal_id}
            )
        return ProposalDoc.from_document(doc)

    async def list_proposals(
        self,
        created_by: str | None = None,
        status: ProposalStatus | str | None = None,
        newest_first: bool = True,
    ) -> list[ProposalDoc]:
        """
        List proposals, optionally filtered by author and status.

        Args:
            created_by: Only proposals of this author
            status: Only proposals in this status
            newest_first: Sort order by creation time

        Returns:
            List of proposals
        """
        status = ProposalStatus(status) if status is not None else None
        proposals = [ProposalDoc.from_document(doc) for _, doc in await self.store.scan(COLLECTION)]
        if created_by is not None:
            proposals = [p for p in proposals if p.created_by == created_by]
        if status is not None:
            proposals = [p for p in proposals if p.status == status]
        return sorted(proposals, key=lambda p: p.created_at, reverse=newest_first)

    async def pending_queue(self) -> list[ProposalDoc]:
        """Pending proposals, oldest first (the moderation queue)."""
        return await self.list_proposals(status=ProposalStatus.PENDING, newest_first=False)
