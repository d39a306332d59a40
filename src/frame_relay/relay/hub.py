"""
Relay Hub
=========

Wires the registry, broadcaster and producer sessions together.

The hub is the only object the web layer talks to. It owns the shared
relay state for the lifetime of the process.
"""

import logging
from typing import Optional, Set

from frame_relay.config import RelayConfig
from frame_relay.models.stream import StreamKind
from frame_relay.relay.broadcaster import Broadcaster, ViewerConnection
from frame_relay.relay.lifecycle import ProducerSession
from frame_relay.relay.registry import StreamRegistry


logger = logging.getLogger(__name__)


class RelayHub:
    """
    Shared in-memory relay state.

    Attributes:
        registry: Producer presence
        broadcaster: Viewer fan-out
        config: Relay tuning
    """

    def __init__(self, config: Optional[RelayConfig] = None) -> None:
        self.config = config or RelayConfig()
        self.registry = StreamRegistry()
        self.broadcaster = Broadcaster(
            snapshot_provider=self.registry.snapshot,
            viewer_queue_size=self.config.viewer_queue_size,
        )
        self.registry.subscribe(self.broadcaster.publish_presence)
        self._sessions: Set[ProducerSession] = set()

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def open_session(self, client_id: str, kind: StreamKind) -> ProducerSession:
        """Create an IDLE session for a new producer connection."""
        session = ProducerSession(
            client_id=client_id,
            kind=kind,
            registry=self.registry,
            broadcaster=self.broadcaster,
            max_frame_size=self.config.max_frame_size,
            idle_timeout=self.config.producer_idle_timeout_seconds,
        )
        self._sessions.add(session)
        return session

    def close_session(self, session: ProducerSession) -> None:
        self._sessions.discard(session)

    def subscribe_viewer(self) -> ViewerConnection:
        return self.broadcaster.subscribe()

    def unsubscribe_viewer(self, viewer: ViewerConnection) -> None:
        self.broadcaster.unsubscribe(viewer)

    def shutdown(self) -> None:
        """Drop all viewers. Producer sessions end with their requests."""
        logger.info(
            f"Relay shutting down ({self.active_sessions} producers, "
            f"{self.broadcaster.viewer_count} viewers)"
        )
        self.broadcaster.close_all()

    def metrics(self) -> dict:
        return {
            "active_producers": self.active_sessions,
            "active_clients": len(self.registry),
            **self.broadcaster.metrics_dict(),
        }
