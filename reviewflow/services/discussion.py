"""
Discussion Directory - Threads and comments attached to content.

The review pipeline uses it as a recipient source (thread participants) and
to post comments that fan out to watchers and participants.
"""

from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.models.address import ContentAddress
from reviewflow.models.discussion import DiscussionCommentDoc, DiscussionThreadDoc, ThreadStatus
from reviewflow.models.proposal import utc_now
from reviewflow.utils.exceptions import ConflictError, NotFoundError, ValidationError
from reviewflow.utils.id_generator import generate_comment_id, generate_thread_id
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)

COLLECTION = "discussions"


class DiscussionDirectory:
    """Thread and comment access over the document store."""

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def _thread_path(thread_id: str) -> str:
        if not thread_id or "/" in thread_id:
            raise NotFoundError(f"Thread not found: {thread_id}", context={"thread_id": thread_id})
        return f"{COLLECTION}/{thread_id}"

    async def create_thread(
        self,
        subject_id: str,
        created_by: str,
        type_id: str | None = None,
        content_id: str | None = None,
        title: str | None = None,
    ) -> DiscussionThreadDoc:
        """Open a new thread on a subject, type or content node."""
        if not created_by or "/" in created_by:
            raise ValidationError("actor is required to open a thread")
        ContentAddress.for_content(subject_id, type_id, content_id)
        thread = DiscussionThreadDoc(
            id=generate_thread_id(),
            subject_id=subject_id,
            type_id=type_id,
            content_id=content_id,
            title=title,
            created_by=created_by,
        )
        await self.store.put(self._thread_path(thread.id), thread.to_document())
        return thread

    async def get_thread(self, thread_id: str) -> DiscussionThreadDoc:
        """
        Raises:
            NotFoundError: If the thread does not exist
        """
        doc = await self.store.get(self._thread_path(thread_id))
        if doc is None:
            raise NotFoundError(f"Thread not found: {thread_id}", context={"thread_id": thread_id})
        return DiscussionThreadDoc.from_document(doc)

    async def lock_thread(self, thread_id: str) -> DiscussionThreadDoc:
        """Lock a thread against new comments."""
        path = self._thread_path(thread_id)

        async def _lock(tx: Transaction) -> DiscussionThreadDoc:
            doc = await tx.get(path)
            if doc is None:
                raise NotFoundError(
                    f"Thread not found: {thread_id}", context={"thread_id": thread_id}
                )
            thread = DiscussionThreadDoc.from_document(doc).model_copy(
                update={"status": ThreadStatus.LOCKED, "last_activity_at": utc_now()}
            )
            tx.put(path, thread.to_document())
            return thread

        return await self.store.run_transaction(_lock)

    def add_comment_in(
        self,
        tx: Transaction,
        thread: DiscussionThreadDoc,
        text: str,
        created_by: str,
        parent_id: str | None = None,
    ) -> DiscussionCommentDoc:
        """
        Stage a comment (and the thread's activity bump) inside a transaction.

        Raises:
            ValidationError: If text or author is missing
            ConflictError: If the thread is locked
        """
        if not text or not text.strip():
            raise ValidationError("comment text must not be empty")
        if not created_by or "/" in created_by:
            raise ValidationError("actor is required to comment")
        if thread.status is ThreadStatus.LOCKED:
            raise ConflictError(
                f"Thread {thread.id} is locked", context={"thread_id": thread.id}
            )

        comment = DiscussionCommentDoc(
            id=generate_comment_id(), text=text, created_by=created_by, parent_id=parent_id
        )
        tx.put(f"{COLLECTION}/{thread.id}/comments/{comment.id}", comment.to_document())
        tx.put(
            self._thread_path(thread.id),
            thread.model_copy(update={"last_activity_at": comment.created_at}).to_document(),
        )
        return comment

    async def add_comment(
        self,
        thread_id: str,
        text: str,
        created_by: str,
        parent_id: str | None = None,
    ) -> DiscussionCommentDoc:
        """
        Add a comment to a thread without notifying anyone.

        ReviewPipeline.post_comment is the notifying variant.
        """
        path = self._thread_path(thread_id)

        async def _add(tx: Transaction) -> DiscussionCommentDoc:
            doc = await tx.get(path)
            if doc is None:
                raise NotFoundError(
                    f"Thread not found: {thread_id}", context={"thread_id": thread_id}
                )
            thread = DiscussionThreadDoc.from_document(doc)
            return self.add_comment_in(tx, thread, text, created_by, parent_id=parent_id)

        return await self.store.run_transaction(_add)

    @staticmethod
    def thread_address(thread: DiscussionThreadDoc) -> ContentAddress:
        """ContentAddress a thread is attached to."""
        return thread.address

    async def comments(self, thread_id: str) -> list[DiscussionCommentDoc]:
        """Comments of a thread, oldest first."""
        docs = await self.store.scan(f"{self._thread_path(thread_id)}/comments")
        comments = [DiscussionCommentDoc.from_document(doc) for _, doc in docs]
        return sorted(comments, key=lambda comment: comment.created_at)

    async def participants(self, thread_id: str) -> set[str]:
        """
        Users taking part in a thread: its creator and every comment author.

        Returns an empty set for unknown threads.
        """
        doc = await self.store.get(self._thread_path(thread_id))
        if doc is None:
            logger.warning(f"Participants requested for unknown thread {thread_id}")
            return set()
        participants = {DiscussionThreadDoc.from_document(doc).created_by}
        participants.update(comment.created_by for comment in await self.comments(thread_id))
        return participants
