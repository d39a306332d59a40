"""
Frame Data Model
=================

Internal frame representation for the relay pipeline.

A Frame exists only long enough to be handed from a producer session to
the broadcaster and serialized once for all viewers. It is never stored.

Design Rules:
    - Does NOT decode or manipulate image data
    - Tagged with the producer connection it came from
"""

from dataclasses import dataclass

from frame_relay.models.messages import FrameMessage
from frame_relay.models.stream import StreamKind


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One decoded frame from a producer connection.

    Attributes:
        client_id: Producer-supplied session identifier
        kind: Stream kind of the producer connection
        payload: Raw frame bytes (JPEG, passed through unchanged)
    """

    client_id: str
    kind: StreamKind
    payload: bytes

    def to_message(self) -> FrameMessage:
        return FrameMessage.from_payload(self.client_id, self.kind, self.payload)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(client_id={self.client_id!r}, "
            f"kind={self.kind.value}, "
            f"size={len(self.payload)})"
        )
