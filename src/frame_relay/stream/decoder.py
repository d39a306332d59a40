"""
Frame Decoder
=============

Incremental parser for the length-prefixed producer upload protocol.

Wire format (repeated, no delimiter):
    [4-byte big-endian unsigned length L][L bytes of payload]

Producers stream this over a single HTTP request body, and the transport
may split it at any byte boundary. The decoder keeps an accumulation buffer
and a two-state sub-protocol so that feeding the same bytes in any chunking
yields the same payloads.

Design Rules:
    - One DecodeState per producer connection, never shared
    - Never raises on malformed input
    - Zero-length frames are legal and emit b""
    - A declared length above max_frame_size drops that frame and the next
      4 bytes are read as a fresh length prefix

Example:
    decoder = FrameDecoder()

    for chunk in chunks:
        for payload in decoder.feed(chunk):
            publish(payload)
"""

import logging
import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from frame_relay.config import DEFAULT_MAX_FRAME_SIZE


logger = logging.getLogger(__name__)


LENGTH_PREFIX_SIZE = 4

_LENGTH_PREFIX = struct.Struct(">I")


class Awaiting(str, Enum):
    """What the decoder needs next."""

    LENGTH_PREFIX = "length_prefix"
    PAYLOAD = "payload"


@dataclass
class DecodeState:
    """
    Mutable per-connection decode state.

    Attributes:
        buffer: Bytes received but not yet consumed
        awaiting: Current sub-protocol state
        remaining: Payload length still expected while awaiting PAYLOAD
    """

    buffer: bytearray = field(default_factory=bytearray)
    awaiting: Awaiting = Awaiting.LENGTH_PREFIX
    remaining: int = 0

    def reset(self) -> None:
        """Return to awaiting a length prefix. Buffered bytes are kept."""
        self.awaiting = Awaiting.LENGTH_PREFIX
        self.remaining = 0


class FrameDecoderMetrics:
    """Metrics for FrameDecoder observability."""

    __slots__ = (
        "bytes_received",
        "frames_decoded",
        "oversized_dropped",
    )

    def __init__(self) -> None:
        self.bytes_received: int = 0
        self.frames_decoded: int = 0
        self.oversized_dropped: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "bytes_received": self.bytes_received,
            "frames_decoded": self.frames_decoded,
            "oversized_dropped": self.oversized_dropped,
        }


class FrameDecoder:
    """
    Chunk-invariant decoder for length-prefixed frames.

    Attributes:
        max_frame_size: Largest accepted declared length
        state: The connection's DecodeState
        metrics: Operational counters
    """

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> None:
        self.max_frame_size = max_frame_size
        self.state = DecodeState()
        self.metrics = FrameDecoderMetrics()

    @property
    def buffered(self) -> int:
        """Number of bytes received but not yet consumed."""
        return len(self.state.buffer)

    def feed(self, chunk: bytes) -> List[bytes]:
        """
        Consume a chunk and return every payload it completes.

        Bytes left over after the last complete transition stay buffered
        for the next call.

        Args:
            chunk: Next piece of the upload body (any size, may be empty)

        Returns:
            Payloads completed by this chunk, in stream order
        """
        state = self.state
        if chunk:
            state.buffer += chunk
            self.metrics.bytes_received += len(chunk)

        frames: List[bytes] = []
        offset = 0
        buf = state.buffer

        while True:
            available = len(buf) - offset

            if state.awaiting is Awaiting.LENGTH_PREFIX:
                if available < LENGTH_PREFIX_SIZE:
                    break
                (length,) = _LENGTH_PREFIX.unpack_from(buf, offset)
                offset += LENGTH_PREFIX_SIZE

                if length > self.max_frame_size:
                    self.metrics.oversized_dropped += 1
                    logger.warning(
                        f"Dropping frame with declared length {length} "
                        f"(max {self.max_frame_size})"
                    )
                    state.reset()
                    continue

                state.awaiting = Awaiting.PAYLOAD
                state.remaining = length
                continue

            if available < state.remaining:
                break

            end = offset + state.remaining
            frames.append(bytes(buf[offset:end]))
            offset = end
            state.reset()

        if offset:
            del buf[:offset]

        self.metrics.frames_decoded += len(frames)
        return frames
