"""
Producer Client
===============

HTTP client for uploading frames to a FrameRelay server.

Capture itself (screen grabbing, webcam, JPEG encoding) is up to the
caller: the client only takes JPEG bytes and speaks the upload protocol.

Two ways to send:
    - send(frames): one long-lived chunked POST carrying many frames
    - run(source): one short POST per frame at a fixed rate, which is
      what capture agents behind strict proxies tend to need

Example:
    client = ProducerClient("http://localhost:3000", StreamKind.WEBCAM)
    client.send_one(jpeg_bytes)

    # 10 FPS until stop() is called from another thread
    client.run(camera.latest_jpeg, interval=0.1)
"""

import logging
import struct
import threading
import uuid
from typing import Callable, Iterable, Iterator, Optional

import requests

from frame_relay.config import DEFAULT_MAX_FRAME_SIZE
from frame_relay.models.stream import StreamKind


logger = logging.getLogger(__name__)


DEFAULT_INTERVAL_SECONDS = 0.1  # 10 FPS

_LENGTH_PREFIX = struct.Struct(">I")


def encode_frame(payload: bytes) -> bytes:
    """
    Prefix a payload with its 4-byte big-endian length.

    Raises:
        ValueError: If the payload exceeds the relay's frame size limit
    """
    if len(payload) > DEFAULT_MAX_FRAME_SIZE:
        raise ValueError(
            f"frame of {len(payload)} bytes exceeds {DEFAULT_MAX_FRAME_SIZE}"
        )
    return _LENGTH_PREFIX.pack(len(payload)) + payload


class ProducerClientMetrics:
    """Metrics for ProducerClient observability."""

    __slots__ = (
        "frames_sent",
        "bytes_sent",
        "requests_failed",
        "last_status",
    )

    def __init__(self) -> None:
        self.frames_sent: int = 0
        self.bytes_sent: int = 0
        self.requests_failed: int = 0
        self.last_status: Optional[int] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "requests_failed": self.requests_failed,
            "last_status": self.last_status,
        }


class ProducerClient:
    """
    Uploads frames for one (client_id, kind) stream.

    Attributes:
        base_url: Relay base URL, e.g. http://localhost:3000
        kind: Stream kind to upload as
        client_id: Session id (random UUID4 unless given)
        timeout: (connect, read) timeout for each request
        metrics: Operational counters
    """

    def __init__(
        self,
        base_url: str,
        kind: StreamKind,
        client_id: Optional[str] = None,
        timeout: tuple = (10.0, 5.0),
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.kind = kind
        self.client_id = client_id or str(uuid.uuid4())
        self.timeout = timeout
        self.metrics = ProducerClientMetrics()

        self._session = session or requests.Session()
        self._stop_event = threading.Event()

    @property
    def url(self) -> str:
        return f"{self.base_url}/stream/{self.kind.value}"

    def send(self, frames: Iterable[bytes]) -> int:
        """
        Stream frames in a single chunked POST.

        Returns:
            HTTP status code of the response.

        Raises:
            requests.RequestException: On transport failure
        """
        response = self._session.post(
            self.url,
            params={"clientId": self.client_id},
            data=self._encode_all(frames),
            headers={"Content-Type": "application/octet-stream"},
            timeout=self.timeout,
        )
        self.metrics.last_status = response.status_code
        if not response.ok:
            self.metrics.requests_failed += 1
            logger.error(
                f"[{self.kind.value}] POST {self.url} -> {response.status_code}: "
                f"{response.text}"
            )
        return response.status_code

    def send_one(self, payload: bytes) -> int:
        """Upload a single frame in its own request."""
        return self.send([payload])

    def run(
        self,
        frame_source: Callable[[], Optional[bytes]],
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        """
        Send one frame per request every ``interval`` seconds until stop().

        Frames the source returns as None or empty are skipped. Transport
        errors are logged and the loop carries on.
        """
        self._stop_event.clear()
        logger.info(
            f"[{self.kind.value}] Streaming to {self.url} "
            f"as {self.client_id} every {interval:.2f}s"
        )
        while not self._stop_event.is_set():
            frame = frame_source()
            if frame:
                try:
                    status = self.send_one(frame)
                    if self.metrics.frames_sent == 1:
                        logger.info(f"[{self.kind.value}] POST {self.url} -> {status}")
                except requests.RequestException as e:
                    self.metrics.requests_failed += 1
                    logger.error(f"[{self.kind.value}] {e}")
            self._stop_event.wait(interval)
        logger.info(f"[{self.kind.value}] Producer stopped")

    def stop(self) -> None:
        """Ask a running run() loop to exit after its current request."""
        self._stop_event.set()

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "ProducerClient":
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
        self.close()

    def _encode_all(self, frames: Iterable[bytes]) -> Iterator[bytes]:
        for payload in frames:
            chunk = encode_frame(payload)
            self.metrics.frames_sent += 1
            self.metrics.bytes_sent += len(chunk)
            yield chunk
