"""
Data Models
===========

Wire and domain models for FrameRelay.

Models:
    Stream:
        - StreamKind: Capture source of a producer connection (screen/webcam)

    Viewer channel:
        - StreamEntry: Presence of one producer client
        - StreamsMessage: Full presence snapshot
        - FrameMessage: One relayed frame (base64 payload)
"""

from frame_relay.models.stream import StreamKind
from frame_relay.models.messages import (
    FrameMessage,
    StreamEntry,
    StreamsMessage,
    ViewerMessage,
    parse_message,
)

__all__ = [
    # Stream
    "StreamKind",
    # Viewer channel
    "StreamEntry",
    "StreamsMessage",
    "FrameMessage",
    "ViewerMessage",
    "parse_message",
]
