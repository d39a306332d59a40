"""
Stream Module
=============

Producer-side byte stream handling.

This module provides the ingestion layer for FrameRelay:
    - Frame: Typed frame data model (internal representation)
    - FrameDecoder: Chunk-invariant length-prefix parser
    - DecodeState: Per-connection decoder state

Example:
    from frame_relay.stream import FrameDecoder

    decoder = FrameDecoder(max_frame_size=10 * 1024 * 1024)
    async for chunk in request.stream():
        for payload in decoder.feed(chunk):
            ...
"""

from frame_relay.stream.frame import Frame
from frame_relay.stream.decoder import (
    LENGTH_PREFIX_SIZE,
    Awaiting,
    DecodeState,
    FrameDecoder,
    FrameDecoderMetrics,
)


__all__ = [
    "Frame",
    "FrameDecoder",
    "FrameDecoderMetrics",
    "DecodeState",
    "Awaiting",
    "LENGTH_PREFIX_SIZE",
]
