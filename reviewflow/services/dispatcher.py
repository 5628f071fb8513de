"""
Fan-out dispatch modes.

client: the resolving actor's call performs the fan-out before returning,
        bounded by a timeout. A failed or cut-short run leaves the outbox
        record pending; the resolution itself is already committed.
server: the call only wakes the background outbox worker, which delivers
        with per-recipient retries.
"""

from abc import ABC, abstractmethod

from reviewflow.models.events import DispatchReport, OutboxRecord
from reviewflow.services.outbox import OutboxRelay, OutboxWorker
from reviewflow.utils.exceptions import ReviewFlowError
from reviewflow.utils.logger import get_logger

logger = get_logger(__name__)


class FanoutDispatcher(ABC):
    """Abstract dispatcher for committed outbox events."""

    mode: str = ""

    @abstractmethod
    async def dispatch(self, record: OutboxRecord) -> DispatchReport:
        """
        Hand a committed event to notification delivery.

        Never raises for delivery problems; they are reported in the
        returned DispatchReport.
        """
        pass

    async def start(self) -> None:
        """Start background resources, if any."""

    async def stop(self) -> None:
        """Stop background resources, if any."""


class ClientFanoutDispatcher(FanoutDispatcher):
    """Delivers inline, inside the caller's request."""

    mode = "client"

    def __init__(self, relay: OutboxRelay, timeout: float | None = None):
        self.relay = relay
        self.timeout = timeout

    async def dispatch(self, record: OutboxRecord) -> DispatchReport:
        report = DispatchReport(event_id=record.event_id, mode=self.mode)
        try:
            report.result = await self.relay.deliver(record, timeout=self.timeout)
        except ReviewFlowError as e:
            logger.bind(event_id=record.event_id, error_type=type(e).__name__).error(
                f"Client fan-out for {record.event_id} failed, event left pending: {e}"
            )
            report.error = str(e)
        return report


class ServerFanoutDispatcher(FanoutDispatcher):
    """Queues the event for the background outbox worker."""

    mode = "server"

    def __init__(self, worker: OutboxWorker):
        self.worker = worker

    async def dispatch(self, record: OutboxRecord) -> DispatchReport:
        self.worker.wake()
        logger.debug(f"Event {record.event_id} queued for background fan-out")
        return DispatchReport(event_id=record.event_id, mode=self.mode, queued=True)

    async def start(self) -> None:
        await self.worker.start()

    async def stop(self) -> None:
        await self.worker.stop()
