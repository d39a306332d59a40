#!/usr/bin/env python3
"""
Relay Smoke Test Script
=======================

Standalone script to exercise a running FrameRelay end to end.

This script:
    1. Connects a ViewerClient to the relay's /view channel
    2. Uploads a fixed number of frames as one producer
    3. Waits for the frames to come back through the viewer
    4. Reports a final summary

Prerequisites:
    - A relay must be running (uvicorn frame_relay.main:app --port 3000)
    - Install the package: pip install -e .

Usage:
    python scripts/relay_smoke.py --frames 50
    python scripts/relay_smoke.py --url http://localhost:3000 --kind screen
"""

import argparse
import asyncio
import logging
import os
import sys
import time

from frame_relay.clients import ProducerClient, ViewerClient
from frame_relay.models import FrameMessage, StreamKind


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


# Smallest valid 1x1 JPEG, used as placeholder frame content
MINIMAL_JPEG = bytes.fromhex(
    "ffd8ffe000104a46494600010100000100010000ffdb004300080606070605080707"
    "070909080a0c140d0c0b0b0c1912130f141d1a1f1e1d1a1c1c20242e2720222c231c"
    "1c2837292c30313434341f27393d38323c2e333432ffc0000b080001000101011100"
    "ffc4001f0000010501010101010100000000000000000102030405060708090a0bff"
    "da0008010100003f007bdfffd9"
)


async def run_test(base_url: str, kind: StreamKind, frames: int, wait: float) -> dict:
    """
    Run the smoke test.

    Args:
        base_url: HTTP base URL of the relay
        kind: Stream kind to upload as
        frames: Number of frames to upload
        wait: Seconds to wait for relayed frames after uploading

    Returns:
        Final metrics dict
    """
    ws_url = base_url.replace("http", "ws", 1).rstrip("/") + "/view"
    received = []

    async def on_message(message) -> None:
        if isinstance(message, FrameMessage) and message.client_id == producer.client_id:
            received.append(message.payload())

    producer = ProducerClient(base_url, kind)
    viewer = ViewerClient(ws_url, on_message=on_message, max_reconnect_attempts=1)

    logger.info("=" * 60)
    logger.info("Relay Smoke Test")
    logger.info("=" * 60)
    logger.info(f"Relay: {base_url}")
    logger.info(f"Client: {producer.client_id} ({kind.value})")
    logger.info(f"Frames: {frames}")
    logger.info("=" * 60)

    viewer_task = asyncio.create_task(viewer.run())
    start_time = time.time()

    try:
        # give the viewer a moment to receive its initial snapshot
        while viewer.metrics.snapshots_received == 0 and time.time() - start_time < 5:
            await asyncio.sleep(0.1)

        status = await asyncio.to_thread(
            producer.send, (MINIMAL_JPEG for _ in range(frames))
        )
        logger.info(f"Upload finished with status {status}")

        deadline = time.time() + wait
        while len(received) < frames and time.time() < deadline:
            await asyncio.sleep(0.1)
    finally:
        await viewer.stop()
        try:
            await asyncio.wait_for(viewer_task, timeout=5.0)
        except asyncio.TimeoutError:
            viewer_task.cancel()
        producer.close()

    total_time = time.time() - start_time
    intact = sum(1 for payload in received if payload == MINIMAL_JPEG)

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames sent: {producer.metrics.frames_sent}")
    logger.info(f"Frames relayed: {len(received)} ({intact} intact)")
    logger.info(f"Presence snapshots: {viewer.metrics.snapshots_received}")
    logger.info("=" * 60)

    if intact == frames:
        logger.info("TEST PASSED - all frames relayed")
    else:
        logger.error("TEST FAILED - frames missing or corrupted")

    return {
        "duration": total_time,
        "frames_sent": producer.metrics.frames_sent,
        "frames_relayed": len(received),
        "frames_intact": intact,
    }


def main():
    parser = argparse.ArgumentParser(description="FrameRelay end-to-end smoke test")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("SERVER_URL", "http://localhost:3000"),
        help="HTTP base URL of the relay",
    )
    parser.add_argument(
        "--kind",
        type=str,
        choices=[kind.value for kind in StreamKind],
        default=StreamKind.WEBCAM.value,
        help="Stream kind to upload as (default: webcam)",
    )
    parser.add_argument(
        "--frames",
        type=int,
        default=20,
        help="Number of frames to upload (default: 20)",
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=5.0,
        help="Seconds to wait for relayed frames (default: 5)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_test(
        base_url=args.url,
        kind=StreamKind(args.kind),
        frames=args.frames,
        wait=args.wait,
    ))

    sys.exit(0 if result["frames_intact"] == args.frames else 1)


if __name__ == "__main__":
    main()
