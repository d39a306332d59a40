"""
Fan-out Broadcaster
===================

Delivers frames and presence snapshots to every connected viewer.

Each viewer owns a bounded outbound queue drained by its own WebSocket
send task. Publishing only enqueues (put_nowait), so a producer never
awaits a viewer. A viewer whose queue is full is too slow to keep up with
live frames; it is closed and dropped rather than allowed to stall the
fan-out or back-pressure producers.

Delivery Guarantees:
    - Best-effort, at most once per viewer per publish
    - A failed delivery removes only that viewer and never raises
    - Each message is serialized once and shared by all viewers
    - Publishing with zero viewers is a silent no-op (nothing is kept)
"""

import asyncio
import itertools
import logging
import threading
from typing import Callable, List, Optional, Set

from frame_relay.errors import ViewerClosedError
from frame_relay.models.messages import StreamEntry, StreamsMessage
from frame_relay.models.stream import StreamKind
from frame_relay.stream.frame import Frame


logger = logging.getLogger(__name__)


SnapshotProvider = Callable[[], List[StreamEntry]]

_viewer_ids = itertools.count(1)


class ViewerConnection:
    """
    Outbound channel handle for one viewer.

    The broadcaster pushes serialized messages with deliver(); the viewer's
    transport task pulls them with next_message() (or ``async for``) and
    writes them to the socket.

    Attributes:
        viewer_id: Process-unique number, for logging only
        closed: Whether future delivery has been cancelled
    """

    def __init__(self, maxsize: int = 64) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self.viewer_id: int = next(_viewer_ids)
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._closed_event = asyncio.Event()
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Messages queued but not yet taken by the transport."""
        return self._queue.qsize()

    def deliver(self, message: str) -> None:
        """
        Queue a message without waiting.

        Raises:
            ViewerClosedError: If the viewer is closed, or its queue is full
                (in which case it is closed as too slow)
        """
        if self._closed:
            raise ViewerClosedError(f"viewer {self.viewer_id} is closed")
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.close()
            raise ViewerClosedError(
                f"viewer {self.viewer_id} is too slow "
                f"({self._queue.maxsize} messages pending)"
            ) from None

    async def next_message(self) -> Optional[str]:
        """
        Wait for the next queued message.

        Returns:
            The message, or None once the viewer is closed. Messages still
            queued at close time are discarded.
        """
        if self._closed:
            return None

        get_task = asyncio.ensure_future(self._queue.get())
        closed_task = asyncio.ensure_future(self._closed_event.wait())
        try:
            await asyncio.wait(
                {get_task, closed_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            get_task.cancel()
            closed_task.cancel()

        if self._closed or get_task.cancelled():
            return None
        return get_task.result()

    def close(self) -> None:
        """Cancel future delivery. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()

    def __aiter__(self) -> "ViewerConnection":
        return self

    async def __anext__(self) -> str:
        message = await self.next_message()
        if message is None:
            raise StopAsyncIteration
        return message

    def __repr__(self) -> str:
        return (
            f"ViewerConnection(viewer_id={self.viewer_id}, "
            f"pending={self.pending}, closed={self._closed})"
        )


class BroadcasterMetrics:
    """Metrics for Broadcaster observability."""

    __slots__ = (
        "frames_published",
        "presence_published",
        "messages_delivered",
        "viewers_dropped",
    )

    def __init__(self) -> None:
        self.frames_published: int = 0
        self.presence_published: int = 0
        self.messages_delivered: int = 0
        self.viewers_dropped: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_published": self.frames_published,
            "presence_published": self.presence_published,
            "messages_delivered": self.messages_delivered,
            "viewers_dropped": self.viewers_dropped,
        }


class Broadcaster:
    """
    Fan-out hub between producer sessions and viewer connections.

    Attributes:
        viewer_queue_size: Outbound queue bound for each new viewer
        metrics: Operational counters

    Example:
        registry = StreamRegistry()
        broadcaster = Broadcaster(snapshot_provider=registry.snapshot)
        registry.subscribe(broadcaster.publish_presence)

        viewer = broadcaster.subscribe()   # snapshot already queued
        broadcaster.publish_frame("abc", StreamKind.SCREEN, jpeg_bytes)
        async for text in viewer:
            await websocket.send_text(text)
    """

    def __init__(
        self,
        snapshot_provider: Optional[SnapshotProvider] = None,
        viewer_queue_size: int = 64,
    ) -> None:
        self._snapshot_provider: SnapshotProvider = snapshot_provider or list
        self.viewer_queue_size = viewer_queue_size
        self._lock = threading.Lock()
        self._viewers: Set[ViewerConnection] = set()
        self.metrics = BroadcasterMetrics()

    @property
    def viewer_count(self) -> int:
        with self._lock:
            return len(self._viewers)

    def subscribe(self) -> ViewerConnection:
        """Add a viewer and queue the current presence snapshot to it."""
        viewer = ViewerConnection(maxsize=self.viewer_queue_size)
        with self._lock:
            self._viewers.add(viewer)
            total = len(self._viewers)
        logger.info(f"Viewer {viewer.viewer_id} connected (total: {total})")

        self.send_snapshot(viewer)
        return viewer

    def unsubscribe(self, viewer: ViewerConnection) -> None:
        """Remove a viewer and cancel its future delivery. Idempotent."""
        with self._lock:
            present = viewer in self._viewers
            self._viewers.discard(viewer)
            total = len(self._viewers)
        viewer.close()
        if present:
            logger.info(f"Viewer {viewer.viewer_id} disconnected (remaining: {total})")

    def send_snapshot(self, viewer: ViewerConnection) -> bool:
        """
        Queue the current presence snapshot to one viewer.

        Returns:
            True if queued, False if the viewer was dropped instead.
        """
        message = StreamsMessage(streams=self._snapshot_provider()).to_json()
        try:
            viewer.deliver(message)
        except ViewerClosedError as e:
            logger.debug(f"Snapshot delivery failed: {e}")
            self._drop(viewer)
            return False
        self.metrics.messages_delivered += 1
        return True

    def publish_frame(self, client_id: str, kind: StreamKind, payload: bytes) -> int:
        """
        Deliver one frame to every current viewer.

        Returns:
            Number of viewers the frame was queued to.
        """
        self.metrics.frames_published += 1
        viewers = self._current_viewers()
        if not viewers:
            return 0
        message = Frame(client_id, kind, payload).to_message().to_json()
        return self._broadcast(viewers, message)

    def publish_presence(self, snapshot: List[StreamEntry]) -> int:
        """
        Deliver a presence snapshot to every current viewer.

        Returns:
            Number of viewers the snapshot was queued to.
        """
        self.metrics.presence_published += 1
        viewers = self._current_viewers()
        if not viewers:
            return 0
        message = StreamsMessage(streams=snapshot).to_json()
        return self._broadcast(viewers, message)

    def close_all(self) -> None:
        """Drop every viewer (used on shutdown)."""
        with self._lock:
            viewers = list(self._viewers)
            self._viewers.clear()
        for viewer in viewers:
            viewer.close()

    def _current_viewers(self) -> List[ViewerConnection]:
        with self._lock:
            return list(self._viewers)

    def _broadcast(self, viewers: List[ViewerConnection], message: str) -> int:
        delivered = 0
        for viewer in viewers:
            try:
                viewer.deliver(message)
                delivered += 1
            except ViewerClosedError as e:
                logger.debug(f"Failed to deliver to viewer: {e}")
                self._drop(viewer)
        self.metrics.messages_delivered += delivered
        return delivered

    def _drop(self, viewer: ViewerConnection) -> None:
        with self._lock:
            present = viewer in self._viewers
            self._viewers.discard(viewer)
            total = len(self._viewers)
        viewer.close()
        if present:
            self.metrics.viewers_dropped += 1
            logger.info(f"Dropped viewer {viewer.viewer_id} (remaining: {total})")

    def metrics_dict(self) -> dict:
        return {"viewers": self.viewer_count, **self.metrics.to_dict()}
