"""
Client Module
=============

Python clients for both sides of the relay:
    - ProducerClient: Uploads length-prefixed frames over HTTP
    - ViewerClient: Consumes the /view WebSocket channel
    - encode_frame: Length-prefix one payload
"""

from frame_relay.clients.producer import (
    ProducerClient,
    ProducerClientMetrics,
    encode_frame,
)
from frame_relay.clients.viewer import ViewerClient, ViewerClientMetrics


__all__ = [
    "ProducerClient",
    "ProducerClientMetrics",
    "ViewerClient",
    "ViewerClientMetrics",
    "encode_frame",
]
