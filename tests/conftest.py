"""
Test Configuration
==================

Pytest fixtures and test configuration for FrameRelay.
"""

import pytest


@pytest.fixture
def frame_stream():
    """Three encoded frames, including an empty one, and their payloads."""
    from frame_relay.clients.producer import encode_frame as encode

    payloads = [b"hello", b"", b"\xff\xd8" + bytes(range(256)) + b"\xff\xd9"]
    return b"".join(encode(p) for p in payloads), payloads


@pytest.fixture
def registry():
    """Provide an empty StreamRegistry."""
    from frame_relay.relay.registry import StreamRegistry

    return StreamRegistry()


@pytest.fixture
def broadcaster(registry):
    """Provide a Broadcaster wired to the registry like the relay hub does."""
    from frame_relay.relay.broadcaster import Broadcaster

    broadcaster = Broadcaster(snapshot_provider=registry.snapshot, viewer_queue_size=8)
    registry.subscribe(broadcaster.publish_presence)
    return broadcaster


@pytest.fixture
def hub():
    """Provide a RelayHub with default relay settings."""
    from frame_relay.relay.hub import RelayHub

    return RelayHub()
