"""Failure classes surfaced through the ``error`` notification.

Every one of these is recoverable: the event source logs it, emits it to
``error`` handlers, then disconnects and reconnects after a backoff delay.
"""

from __future__ import annotations


class SSELinkError(Exception):
    """Base class for event source failures."""


class TransportError(SSELinkError):
    """Network, DNS or TLS failure while opening or reading the stream."""


class ProtocolError(SSELinkError):
    """The server answered, but not with a usable event stream."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        content_type: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.content_type = content_type
        super().__init__(message)


class HeartbeatTimeoutError(SSELinkError):
    """No bytes arrived from the server within the heartbeat window."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"no heartbeat from server in {timeout:g}s")
