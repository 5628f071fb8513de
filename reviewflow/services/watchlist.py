"""
Watchlist Index - Per-user watched ContentAddresses.

Storage layout:
- ``watchlists/{user}/items/{key}``: the user's WatchlistItemDoc
- ``watchers/{key}/users/{user}``: reverse index used to find subscribers

Both documents are written and removed in one transaction, so the reverse
index never disagrees with the user's own list.

Which watches cover an address is decided by a MatchPolicy:
- AncestorMatchPolicy: watching a subject (or type) covers everything below it
- ExactMatchPolicy: only a watch on the address itself counts
"""

from abc import ABC, abstractmethod

from reviewflow.core.document_store.base import DocumentStore, Transaction
from reviewflow.models.address import ContentAddress
from reviewflow.models.notify import WatchlistItemDoc
from reviewflow.utils.exceptions import ValidationError
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)


class MatchPolicy(ABC):
    """Strategy deciding which watched addresses cover a target address."""

    name: str = ""

    @abstractmethod
    def covering(self, address: ContentAddress) -> list[ContentAddress]:
        """
        Addresses whose watchers are subscribers of ``address``.

        Args:
            address: Target address

        Returns:
            List of watched addresses to look up
        """
        pass


class AncestorMatchPolicy(MatchPolicy):
    """A watch on an address or any of its ancestors matches."""

    name = "ancestor"

    def covering(self, address: ContentAddress) -> list[ContentAddress]:
        return address.lineage()


class ExactMatchPolicy(MatchPolicy):
    """Only a watch on exactly the address matches."""

    name = "exact"

    def covering(self, address: ContentAddress) -> list[ContentAddress]:
        return [address]


def create_match_policy(name: str) -> MatchPolicy:
    """
    Create a match policy by name.

    Raises:
        ValueError: If the policy name is unknown
    """
    if name == "ancestor":
        return AncestorMatchPolicy()
    elif name == "exact":
        return ExactMatchPolicy()
    else:
        raise ValueError(f"Unknown watch match policy: {name}")


def _require_user(user: str) -> str:
    if not user or not str(user).strip() or "/" in user:
        raise ValidationError("a valid user id is required", context={"user": user})
    return user


class WatchlistIndex:
    """Per-user watch items plus a reverse index by address."""

    def __init__(self, store: DocumentStore, policy: MatchPolicy | None = None):
        """
        Initialize watchlist index.

        Args:
            store: Document store
            policy: Subscriber matching rule (defaults to ancestor matching)
        """
        self.store = store
        self.policy = policy or AncestorMatchPolicy()

    @staticmethod
    def _item_path(user: str, address: ContentAddress) -> str:
        return f"watchlists/{user}/items/{address.key}"

    @staticmethod
    def _watcher_path(user: str, address: ContentAddress) -> str:
        return f"watchers/{address.key}/users/{user}"

    async def watch(self, user: str, target_path: str | ContentAddress) -> WatchlistItemDoc:
        """
        Watch an address. Watching twice is the same as watching once.

        Returns:
            The (possibly pre-existing) watch item
        """
        user = _require_user(user)
        address = ContentAddress.parse(target_path)

        async def _watch(tx: Transaction) -> WatchlistItemDoc:
            existing = await tx.get(self._item_path(user, address))
            if existing:
                item = WatchlistItemDoc.from_document(existing)
            else:
                item = WatchlistItemDoc(owner=user, target_key=address.key, target_path=address.path)
                tx.put(self._item_path(user, address), item.to_document())
            tx.put(self._watcher_path(user, address), {"user": user, "target_path": address.path})
            return item

        item = await self.store.run_transaction(_watch)
        logger.bind(user=user).debug(f"{user} watches {address.path}")
        return item

    async def unwatch(self, user: str, target_path: str | ContentAddress) -> None:
        """Stop watching an address. No error if the user was not watching."""
        user = _require_user(user)
        address = ContentAddress.parse(target_path)

        async def _unwatch(tx: Transaction) -> None:
            tx.delete(self._item_path(user, address))
            tx.delete(self._watcher_path(user, address))

        await self.store.run_transaction(_unwatch)
        logger.bind(user=user).debug(f"{user} unwatched {address.path}")

    async def toggle(self, user: str, target_path: str | ContentAddress) -> bool:
        """
        Flip the watch state of an address.

        Returns:
            True if the user now watches the address, False otherwise
        """
        user = _require_user(user)
        address = ContentAddress.parse(target_path)

        async def _toggle(tx: Transaction) -> bool:
            if await tx.get(self._item_path(user, address)):
                tx.delete(self._item_path(user, address))
                tx.delete(self._watcher_path(user, address))
                return False
            item = WatchlistItemDoc(owner=user, target_key=address.key, target_path=address.path)
            tx.put(self._item_path(user, address), item.to_document())
            tx.put(self._watcher_path(user, address), {"user": user, "target_path": address.path})
            return True

        return await self.store.run_transaction(_toggle)

    async def is_watching(self, user: str, target_path: str | ContentAddress) -> bool:
        """Whether the user has a watch item for exactly this address."""
        address = ContentAddress.parse(target_path)
        return await self.store.get(self._item_path(_require_user(user), address)) is not None

    async def watched_by(self, user: str) -> list[WatchlistItemDoc]:
        """All watch items of a user, oldest first."""
        docs = await self.store.scan(f"watchlists/{_require_user(user)}/items")
        items = [WatchlistItemDoc.from_document(doc) for _, doc in docs]
        return sorted(items, key=lambda item: item.created_at)

    async def subscribers_of(self, target_path: str | ContentAddress) -> set[str]:
        """
        Users subscribed to an address under the configured match policy.

        Args:
            target_path: Target ContentAddress

        Returns:
            Set of user IDs
        """
        address = ContentAddress.parse(target_path)
        subscribers: set[str] = set()
        for watched in self.policy.covering(address):
            for _, doc in await self.store.scan(f"watchers/{watched.key}/users"):
                subscribers.add(doc["user"])
        return subscribers
