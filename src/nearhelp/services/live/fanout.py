"""
Fan-out Notifier

Relays incident state changes to live sessions. Every publish runs on a
detached task so the mutation path never waits on receivers.
"""

import logging
from typing import Any, Optional

from ...core.tasks import BackgroundTaskRunner
from .channel import LiveChannelManager
from .metrics import MetricsService


class LiveEvent:
    """Server to client event names"""
    CONNECTED = "connected"
    INCIDENT_CREATED = "incident.created"
    INCIDENT_UPDATED = "incident.updated"
    RESPONDER_JOINED = "incident.responder_joined"
    INCIDENT_RESOLVED = "incident.resolved"
    METRICS_UPDATED = "metrics.updated"


class FanoutNotifier:
    """Publishes events to every live session"""

    def __init__(self, channel: LiveChannelManager, metrics: MetricsService,
                 runner: BackgroundTaskRunner):
        self.logger = logging.getLogger(__name__)
        self.channel = channel
        self.metrics = metrics
        self.runner = runner

    def publish(self, event: str, payload: Any):
        """Schedule a broadcast of ``payload`` under ``event``"""
        return self.runner.spawn(self._deliver(event, payload), name=f"broadcast:{event}")

    def publish_metrics(self):
        """Schedule a fresh metrics snapshot broadcast"""
        return self.runner.spawn(self._deliver_metrics(), name=f"broadcast:{LiveEvent.METRICS_UPDATED}")

    async def _deliver(self, event: str, payload: Any) -> int:
        delivered = await self.channel.broadcast(event, payload)
        self.logger.debug(f"Delivered {event} to {delivered} live sessions")
        return delivered

    async def _deliver_metrics(self) -> Optional[int]:
        snapshot = self.metrics.snapshot()
        return await self._deliver(LiveEvent.METRICS_UPDATED, snapshot)
