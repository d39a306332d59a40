"""
Relay Module
============

The stream relay core:
    - StreamRegistry: Per-client presence of screen/webcam streams
    - Broadcaster: Fan-out of frames and presence to viewers
    - ProducerSession: Lifecycle of one producer upload connection
    - RelayHub: Shared relay state wiring the three together
"""

from frame_relay.relay.registry import StreamRegistry
from frame_relay.relay.broadcaster import (
    Broadcaster,
    BroadcasterMetrics,
    ViewerConnection,
)
from frame_relay.relay.lifecycle import (
    ProducerSession,
    SessionState,
    TerminationReason,
)
from frame_relay.relay.hub import RelayHub


__all__ = [
    "StreamRegistry",
    "Broadcaster",
    "BroadcasterMetrics",
    "ViewerConnection",
    "ProducerSession",
    "SessionState",
    "TerminationReason",
    "RelayHub",
]
