"""
Relay Exceptions
================

Exception hierarchy shared by the relay core.

None of these ever reach a producer or viewer directly: the relay catches
them at the component boundary and turns them into a dropped viewer, a
logged warning or an HTTP status.
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class ViewerClosedError(RelayError):
    """Delivery was attempted to a viewer that is closed or too slow."""


class SessionStateError(RelayError):
    """A producer session was driven through an invalid transition."""
