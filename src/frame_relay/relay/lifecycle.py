"""
Connection Lifecycle Manager
============================

Drives one producer upload connection from registration to cleanup.

State Machine:
    IDLE -> REGISTERED -> STREAMING -> TERMINATED

    IDLE -> REGISTERED:
        A request for /stream/{kind} arrived with a clientId. Requests
        without one are rejected before a session is ever created.
    REGISTERED -> STREAMING:
        The registry marks (clientId, kind) active, then inbound chunks
        are decoded and each frame is published in arrival order.
    STREAMING -> TERMINATED:
        End of stream, transport error, or abrupt disconnect (including
        task cancellation). The registry entry is deactivated exactly
        once, whichever signal fired first.

A session never retries and never shares state with another session; a
reconnecting producer gets a fresh session and a fresh DecodeState.

Example:
    session = ProducerSession(client_id, StreamKind.SCREEN, registry, broadcaster)
    await session.run(request.stream())
"""

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Optional

from starlette.requests import ClientDisconnect

from frame_relay.config import DEFAULT_MAX_FRAME_SIZE
from frame_relay.errors import SessionStateError
from frame_relay.models.stream import StreamKind
from frame_relay.relay.broadcaster import Broadcaster
from frame_relay.relay.registry import StreamRegistry
from frame_relay.stream.decoder import FrameDecoder


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of a producer connection."""

    IDLE = "IDLE"
    REGISTERED = "REGISTERED"
    STREAMING = "STREAMING"
    TERMINATED = "TERMINATED"


class TerminationReason(str, Enum):
    """Which terminal event ended a session."""

    END = "end"
    ERROR = "error"
    DISCONNECT = "disconnect"


class ProducerSession:
    """
    One producer connection bound to a (client_id, kind) pair.

    Owns its FrameDecoder exclusively. All registry and broadcaster access
    goes through their public operations.

    Attributes:
        client_id: Producer-supplied session identifier
        kind: Stream kind carried by this connection
        state: Current lifecycle state
        reason: Why the session terminated (None until TERMINATED)
        timed_out: True when the idle timeout ended the session
        decoder: Per-connection frame decoder
    """

    def __init__(
        self,
        client_id: str,
        kind: StreamKind,
        registry: StreamRegistry,
        broadcaster: Broadcaster,
        max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
        idle_timeout: Optional[float] = None,
    ) -> None:
        if not client_id:
            raise ValueError("client_id must be a non-empty string")

        self.client_id = client_id
        self.kind = kind
        self.idle_timeout = idle_timeout or None
        self._registry = registry
        self._broadcaster = broadcaster
        self.decoder = FrameDecoder(max_frame_size=max_frame_size)
        self.state = SessionState.IDLE
        self.reason: Optional[TerminationReason] = None
        self.timed_out = False

    @property
    def terminated(self) -> bool:
        return self.state is SessionState.TERMINATED

    def register(self) -> None:
        """
        IDLE -> REGISTERED -> STREAMING.

        Raises:
            SessionStateError: If the session is not IDLE
        """
        if self.state is not SessionState.IDLE:
            raise SessionStateError(
                f"cannot register session {self.client_id}/{self.kind.value} "
                f"in state {self.state.value}"
            )
        self.state = SessionState.REGISTERED
        self._registry.set_active(self.client_id, self.kind, True)
        self.state = SessionState.STREAMING
        logger.info(f"Client {self.client_id} connected with {self.kind.value} stream")

    def feed(self, chunk: bytes) -> int:
        """
        Decode a chunk and publish every frame it completes, in order.

        Returns:
            Number of frames published.

        Raises:
            SessionStateError: If the session is not STREAMING
        """
        if self.state is not SessionState.STREAMING:
            raise SessionStateError(
                f"cannot feed session {self.client_id}/{self.kind.value} "
                f"in state {self.state.value}"
            )
        frames = self.decoder.feed(chunk)
        for payload in frames:
            self._broadcaster.publish_frame(self.client_id, self.kind, payload)
        return len(frames)

    def terminate(self, reason: TerminationReason) -> bool:
        """
        Enter TERMINATED and deactivate the registry entry.

        Only the first call has any effect, so concurrent terminal signals
        (e.g. an error followed by a close) deregister exactly once.

        Returns:
            True if this call performed the termination.
        """
        if self.state is SessionState.TERMINATED:
            return False

        was_registered = self.state is not SessionState.IDLE
        self.state = SessionState.TERMINATED
        self.reason = reason

        if was_registered:
            self._registry.set_active(self.client_id, self.kind, False)
            metrics = self.decoder.metrics
            logger.info(
                f"Client {self.client_id} disconnected {self.kind.value} stream "
                f"({reason.value}, frames={metrics.frames_decoded}, "
                f"bytes={metrics.bytes_received}, "
                f"oversized={metrics.oversized_dropped})"
            )
        return True

    async def run(self, chunks: AsyncIterator[bytes]) -> TerminationReason:
        """
        Register, pump the byte stream until it ends, then clean up.

        Transport errors and cancellation are handled here: they end the
        session through the same cleanup path as a normal end of stream.
        Cancellation is re-raised after cleanup.

        Args:
            chunks: The upload body as it arrives

        Returns:
            The termination reason.
        """
        self.register()
        iterator = chunks.__aiter__()
        try:
            while True:
                try:
                    if self.idle_timeout:
                        chunk = await asyncio.wait_for(
                            iterator.__anext__(), timeout=self.idle_timeout
                        )
                    else:
                        chunk = await iterator.__anext__()
                except StopAsyncIteration:
                    self.terminate(TerminationReason.END)
                    break
                self.feed(chunk)

        except asyncio.TimeoutError as e:
            if self.idle_timeout is None:
                logger.warning(
                    f"Timeout in {self.kind.value} stream for client "
                    f"{self.client_id}: {e!r}"
                )
            else:
                self.timed_out = True
                logger.warning(
                    f"Client {self.client_id} {self.kind.value} stream idle for "
                    f"{self.idle_timeout}s, closing"
                )
            self.terminate(TerminationReason.ERROR)
        except asyncio.CancelledError:
            self.terminate(TerminationReason.DISCONNECT)
            raise
        except (ClientDisconnect, ConnectionError):
            logger.warning(
                f"Client {self.client_id} {self.kind.value} stream closed abruptly"
            )
            self.terminate(TerminationReason.DISCONNECT)
        except Exception as e:
            logger.warning(
                f"Error in {self.kind.value} stream for client {self.client_id}: {e}"
            )
            self.terminate(TerminationReason.ERROR)
        finally:
            self.terminate(TerminationReason.DISCONNECT)

        return self.reason

    def __repr__(self) -> str:
        return (
            f"ProducerSession(client_id={self.client_id!r}, "
            f"kind={self.kind.value}, state={self.state.value})"
        )
