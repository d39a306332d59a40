"""
Viewer Client
=============

WebSocket client for the relay's /view channel.

This module provides the ViewerClient class which:
    - Connects to the relay's /view endpoint
    - Validates every message against the viewer message schema
    - Tracks the latest presence snapshot
    - Reconnects after a fixed, spaced delay so a restarting relay is
      not hammered

Design Rules:
    - Does NOT decode image data (frames are handed over as received)
    - Logs malformed messages and keeps going
    - Exposes metrics for health monitoring
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, List, Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
)

from frame_relay.models.messages import (
    FrameMessage,
    StreamEntry,
    StreamsMessage,
    ViewerMessage,
    parse_message,
)


logger = logging.getLogger(__name__)


DEFAULT_RECONNECT_DELAY_SECONDS = 3.0

MessageHandler = Callable[[ViewerMessage], Awaitable[None]]


class ViewerClientMetrics:
    """Metrics for ViewerClient observability."""

    __slots__ = (
        "frames_received",
        "snapshots_received",
        "reconnect_count",
        "parse_errors",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.snapshots_received: int = 0
        self.reconnect_count: int = 0
        self.parse_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "snapshots_received": self.snapshots_received,
            "reconnect_count": self.reconnect_count,
            "parse_errors": self.parse_errors,
        }


class ViewerClient:
    """
    Consumer of relayed frames and presence snapshots.

    Attributes:
        url: WebSocket URL of the relay's /view endpoint
        on_message: Async callback for every validated message
        reconnect_delay_seconds: Pause between reconnect attempts
        max_reconnect_attempts: Give up after this many (0 = unlimited)
        streams: Latest presence snapshot
        metrics: Operational metrics

    Example:
        async def show(message):
            if isinstance(message, FrameMessage):
                render(message.client_id, message.payload())

        client = ViewerClient("ws://localhost:3000/view", on_message=show)
        task = asyncio.create_task(client.run())
        ...
        await client.stop()
        await task
    """

    def __init__(
        self,
        url: str,
        on_message: Optional[MessageHandler] = None,
        reconnect_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        max_reconnect_attempts: int = 0,
    ) -> None:
        self.url = url
        self.on_message = on_message
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self.max_reconnect_attempts = max_reconnect_attempts

        self.streams: List[StreamEntry] = []
        self.metrics = ViewerClientMetrics()

        self._websocket = None
        self._connected: bool = False
        self._running: bool = False
        self._stop_event: asyncio.Event = asyncio.Event()

    @property
    def connected(self) -> bool:
        """Whether currently connected to the relay."""
        return self._connected

    async def run(self) -> None:
        """
        Start consuming messages.

        Runs until stop() is called or the reconnect budget is spent.
        """
        self._running = True
        self._stop_event.clear()

        logger.info(f"ViewerClient starting, connecting to {self.url}")

        while self._running:
            try:
                await self._connect_and_consume()
            except Exception as e:
                if not self._running:
                    break
                logger.error(f"Connection error: {e}")
            finally:
                self._connected = False

            if not self._running:
                break

            if (
                self.max_reconnect_attempts > 0
                and self.metrics.reconnect_count >= self.max_reconnect_attempts
            ):
                logger.error(
                    f"Max reconnect attempts ({self.max_reconnect_attempts}) exceeded"
                )
                break

            self.metrics.reconnect_count += 1
            logger.info(
                f"Reconnecting in {self.reconnect_delay_seconds:.1f}s "
                f"(attempt {self.metrics.reconnect_count})"
            )
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.reconnect_delay_seconds,
                )
                break
            except asyncio.TimeoutError:
                pass

        self._running = False
        logger.info("ViewerClient stopped")

    async def stop(self) -> None:
        """Stop consuming and close the connection."""
        logger.info("ViewerClient stopping...")
        self._running = False
        self._stop_event.set()

        if self._websocket is not None:
            try:
                await self._websocket.close()
            except ConnectionClosed:
                pass

        self._connected = False

    async def refresh(self) -> None:
        """Ask the relay to re-send the current presence snapshot."""
        if self._websocket is None:
            return
        await self._websocket.send(json.dumps({"type": "refresh"}))

    async def _connect_and_consume(self) -> None:
        """Connect and handle messages until disconnect."""
        async with websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=5,
            max_size=None,
        ) as ws:
            self._websocket = ws
            self._connected = True
            logger.info(f"Connected to relay: {self.url}")

            try:
                async for raw in ws:
                    if not self._running:
                        break
                    message = self._parse(raw)
                    if message is not None:
                        await self._dispatch(message)

            except ConnectionClosedOK:
                logger.info("Connection closed normally")
            except ConnectionClosedError as e:
                logger.warning(f"Connection closed with error: {e}")
                raise
            finally:
                self._connected = False
                self._websocket = None

    def _parse(self, raw) -> Optional[ViewerMessage]:
        try:
            return parse_message(raw)
        except ValidationError as e:
            self.metrics.parse_errors += 1
            logger.error(f"Invalid viewer message: {e.error_count()} errors")
            return None

    async def _dispatch(self, message: ViewerMessage) -> None:
        if isinstance(message, StreamsMessage):
            self.metrics.snapshots_received += 1
            self.streams = list(message.streams)
            logger.debug(f"Presence update: {len(self.streams)} clients")
        elif isinstance(message, FrameMessage):
            self.metrics.frames_received += 1

        if self.on_message is not None:
            await self.on_message(message)
