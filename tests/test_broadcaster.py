"""
Fan-out Broadcaster Tests
=========================
"""

import asyncio
import base64
import json

import pytest

from frame_relay.errors import ViewerClosedError
from frame_relay.models.stream import StreamKind
from frame_relay.relay.broadcaster import ViewerConnection


def drain(viewer):
    """Pull every queued message off a viewer without awaiting."""
    messages = []
    while viewer.pending:
        messages.append(json.loads(viewer._queue.get_nowait()))
    return messages


class TestSubscribe:
    """Joining viewers."""

    def test_new_viewer_gets_snapshot(self, registry, broadcaster):
        """A viewer joining after two producers sees both immediately."""
        registry.set_active("a", StreamKind.SCREEN, True)
        registry.set_active("b", StreamKind.WEBCAM, True)

        viewer = broadcaster.subscribe()

        [message] = drain(viewer)
        assert message == {
            "type": "streams",
            "streams": [
                {"clientId": "a", "hasScreen": True, "hasWebcam": False},
                {"clientId": "b", "hasScreen": False, "hasWebcam": True},
            ],
        }

    def test_unsubscribe_closes_viewer(self, broadcaster):
        """Unsubscribed viewers are closed and no longer counted."""
        viewer = broadcaster.subscribe()
        broadcaster.unsubscribe(viewer)
        broadcaster.unsubscribe(viewer)

        assert viewer.closed
        assert broadcaster.viewer_count == 0

    def test_registry_change_reaches_viewers(self, registry, broadcaster):
        """Presence changes are pushed to existing viewers."""
        viewer = broadcaster.subscribe()
        drain(viewer)

        registry.set_active("a", StreamKind.WEBCAM, True)

        [message] = drain(viewer)
        assert message["type"] == "streams"
        assert message["streams"][0]["clientId"] == "a"


class TestPublish:
    """Frame fan-out."""

    def test_frame_envelope(self, broadcaster):
        """Frames are sent as base64 in the frame envelope."""
        viewer = broadcaster.subscribe()
        drain(viewer)

        broadcaster.publish_frame("a", StreamKind.SCREEN, b"\xff\xd8jpeg")

        [message] = drain(viewer)
        assert message == {
            "type": "frame",
            "clientId": "a",
            "streamType": "screen",
            "data": base64.b64encode(b"\xff\xd8jpeg").decode("ascii"),
        }

    def test_publish_without_viewers(self, broadcaster):
        """Publishing to nobody is silent and nothing is kept for later."""
        assert broadcaster.publish_frame("a", StreamKind.SCREEN, b"x") == 0

        viewer = broadcaster.subscribe()
        messages = drain(viewer)
        assert [m["type"] for m in messages] == ["streams"]

    def test_closed_viewer_mid_fanout(self, broadcaster):
        """A viewer leaving mid-batch does not affect the others."""
        viewers = [broadcaster.subscribe() for _ in range(3)]
        for viewer in viewers:
            drain(viewer)

        received = {v.viewer_id: 0 for v in viewers}
        for i in range(6):
            if i == 2:
                viewers[1].close()
            broadcaster.publish_frame("a", StreamKind.WEBCAM, bytes([i]))
            for viewer in viewers:
                received[viewer.viewer_id] += len(drain(viewer))

        assert received[viewers[0].viewer_id] == 6
        assert received[viewers[2].viewer_id] == 6
        assert received[viewers[1].viewer_id] == 2
        assert broadcaster.viewer_count == 2
        assert broadcaster.metrics.viewers_dropped == 1

    def test_slow_viewer_is_dropped(self, broadcaster):
        """A viewer whose queue fills up is dropped, others keep receiving."""
        slow = broadcaster.subscribe()
        fast = broadcaster.subscribe()

        for i in range(20):
            broadcaster.publish_frame("a", StreamKind.SCREEN, bytes([i]))
            drain(fast)

        assert slow.closed
        assert not fast.closed
        assert broadcaster.viewer_count == 1

    def test_frames_keep_order(self, broadcaster):
        """One producer's frames arrive in publish order."""
        viewer = broadcaster.subscribe()
        drain(viewer)

        for i in range(5):
            broadcaster.publish_frame("a", StreamKind.SCREEN, bytes([i]))

        datas = [base64.b64decode(m["data"]) for m in drain(viewer)]
        assert datas == [bytes([i]) for i in range(5)]


class TestViewerConnection:
    """The per-viewer outbound queue."""

    def test_deliver_to_closed_raises(self):
        """Delivering to a closed viewer raises ViewerClosedError."""
        viewer = ViewerConnection(maxsize=1)
        viewer.close()
        with pytest.raises(ViewerClosedError):
            viewer.deliver("x")

    def test_overflow_closes(self):
        """A full queue closes the viewer."""
        viewer = ViewerConnection(maxsize=1)
        viewer.deliver("one")
        with pytest.raises(ViewerClosedError):
            viewer.deliver("two")
        assert viewer.closed

    def test_invalid_maxsize(self):
        """maxsize must be positive."""
        with pytest.raises(ValueError):
            ViewerConnection(maxsize=0)

    @pytest.mark.asyncio
    async def test_iterates_until_closed(self):
        """async for yields queued messages and stops on close."""
        viewer = ViewerConnection(maxsize=4)
        viewer.deliver("one")
        viewer.deliver("two")

        received = []
        async for message in viewer:
            received.append(message)
            if len(received) == 2:
                viewer.close()

        assert received == ["one", "two"]

    @pytest.mark.asyncio
    async def test_close_wakes_waiter(self):
        """A transport waiting for a message is released by close()."""
        viewer = ViewerConnection(maxsize=4)
        waiter = asyncio.create_task(viewer.next_message())
        await asyncio.sleep(0)
        viewer.close()

        assert await asyncio.wait_for(waiter, timeout=1.0) is None
