"""
FrameRelay
==========

Near-real-time relay of JPEG frames from screen/webcam producers to
browser viewers.

Producers stream length-prefixed frames over HTTP POST /stream/{kind};
viewers receive frames and presence snapshots over the /view WebSocket.

Components:
    - stream: Frame model and length-prefix decoder
    - relay: Presence registry, fan-out broadcaster, producer lifecycle
    - clients: Producer and viewer client libraries
    - main: FastAPI application

Example:
    uvicorn frame_relay.main:app --port 3000
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
