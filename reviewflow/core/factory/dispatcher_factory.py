"""
Factory for creating the fan-out dispatcher selected by the feature flags.
"""

from reviewflow.config import Config
from reviewflow.services.dispatcher import (
    ClientFanoutDispatcher,
    FanoutDispatcher,
    ServerFanoutDispatcher,
)
from reviewflow.services.notification_fanout import RetryPolicy
from reviewflow.services.outbox import OutboxRelay, OutboxWorker


class DispatcherFactory:
    """Factory for creating fan-out dispatchers from configuration."""

    @staticmethod
    def create(config: Config, relay: OutboxRelay) -> FanoutDispatcher:
        """
        Create dispatcher from configuration.

        Args:
            config: Main configuration object
            relay: Outbox relay shared by both modes

        Returns:
            Dispatcher instance

        Raises:
            ValueError: If fan-out mode is not supported
        """
        mode = config.flags.notification_fanout
        if mode == "client":
            return ClientFanoutDispatcher(relay=relay, timeout=config.fanout.client_timeout)
        elif mode == "server":
            worker = OutboxWorker(
                relay=relay,
                retry=RetryPolicy(
                    max_attempts=config.fanout.max_attempts,
                    retry_delay=config.fanout.retry_delay,
                ),
                poll_interval=config.fanout.poll_interval,
                batch_size=config.fanout.batch_size,
            )
            return ServerFanoutDispatcher(worker=worker)
        else:
            raise ValueError(f"Unsupported notification fan-out mode: {mode}")
