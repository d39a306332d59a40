"""
Stream Kind
===========

Which capture source a producer connection carries.

A producer opens one upload connection per kind, so a single ClientId may
be streaming ``screen`` and ``webcam`` at the same time over two
independent connections.
"""

from enum import Enum


class StreamKind(str, Enum):
    """
    Capture source of a producer connection.

    Attributes:
        SCREEN: Desktop/screen capture
        WEBCAM: Camera capture
    """

    SCREEN = "screen"
    WEBCAM = "webcam"

    @classmethod
    def parse(cls, value: str) -> "StreamKind":
        """
        Look up a kind by its wire name.

        Raises:
            ValueError: If value is not a known kind
        """
        return cls(value)
