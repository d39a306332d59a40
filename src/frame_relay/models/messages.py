"""
Viewer Message Schema
=====================

Pydantic models for the two messages pushed over the ``/view`` channel.

Output Contract (to viewers):
    {
        "type": "streams",
        "streams": [
            {"clientId": "abc", "hasScreen": true, "hasWebcam": false}
        ]
    }

    {
        "type": "frame",
        "clientId": "abc",
        "streamType": "screen",
        "data": "<base64 JPEG>"
    }

Python attribute names are snake_case; the wire names are the camelCase
aliases. Always serialize with ``by_alias=True``.

Example:
    from frame_relay.models.messages import StreamsMessage, parse_message

    text = StreamsMessage(streams=[]).to_json()
    message = parse_message(text)
"""

import base64
from typing import List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from frame_relay.models.stream import StreamKind


class StreamEntry(BaseModel):
    """
    Presence of one producer client.

    Attributes:
        client_id: Producer-supplied session identifier
        has_screen: A screen stream is currently active
        has_webcam: A webcam stream is currently active
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    client_id: str = Field(..., alias="clientId", min_length=1)
    has_screen: bool = Field(default=False, alias="hasScreen")
    has_webcam: bool = Field(default=False, alias="hasWebcam")


class StreamsMessage(BaseModel):
    """Full presence snapshot, sent on connect and after every change."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["streams"] = "streams"
    streams: List[StreamEntry] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class FrameMessage(BaseModel):
    """
    One relayed frame.

    Attributes:
        client_id: Producer that sent the frame
        stream_type: Kind of the producer connection
        data: Base64-encoded payload (JPEG bytes, NOT decoded)
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["frame"] = "frame"
    client_id: str = Field(..., alias="clientId")
    stream_type: StreamKind = Field(..., alias="streamType")
    data: str = Field(..., description="Base64-encoded frame payload")

    @classmethod
    def from_payload(
        cls,
        client_id: str,
        stream_type: StreamKind,
        payload: bytes,
    ) -> "FrameMessage":
        return cls(
            client_id=client_id,
            stream_type=stream_type,
            data=base64.b64encode(payload).decode("ascii"),
        )

    def payload(self) -> bytes:
        """Decode ``data`` back to raw bytes."""
        return base64.b64decode(self.data)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


ViewerMessage = Union[StreamsMessage, FrameMessage]

_viewer_message_adapter: TypeAdapter = TypeAdapter(
    Union[StreamsMessage, FrameMessage]
)


def parse_message(raw: Union[str, bytes]) -> ViewerMessage:
    """
    Validate a raw viewer-channel message.

    Raises:
        pydantic.ValidationError: If the message matches neither shape
    """
    return _viewer_message_adapter.validate_json(raw)
