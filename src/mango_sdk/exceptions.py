"""
Mango SDK Exceptions.

Custom exception hierarchy for the SDK.

Fatal categories (transport, protocol, malformed replies, desynchronized
replies) leave the connection closed. ``ConcurrentRequestError`` and
``CommandError`` leave it usable.
"""

from typing import Any


class MangoError(Exception):
    """Base exception for all Mango SDK errors."""

    def __init__(self, message: str, code: int | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class TransportError(MangoError):
    """Raised when connecting, reading or writing the transport fails."""

    pass


class ConnectionClosedError(TransportError):
    """Raised when the stream ends early or the connection is not open."""

    pass


class TimeoutError(TransportError):
    """Raised when an operation times out."""

    pass


class ProtocolError(MangoError):
    """Raised on a bad operation code, unknown flag bits or a checksum mismatch."""

    pass


class UnexpectedReplyError(ProtocolError):
    """Raised when a reply does not answer any outstanding request."""

    def __init__(self, message: str, response_to: int | None = None):
        self.response_to = response_to
        super().__init__(message)


class MalformedDocumentError(MangoError):
    """Raised when a BSON document cannot be encoded or decoded."""

    def __init__(self, message: str, offset: int | None = None):
        self.offset = offset
        super().__init__(message)


class ConcurrentRequestError(MangoError):
    """Raised when a request is issued while another one is still in flight."""

    pass


class CommandError(MangoError):
    """Raised when the server reports a failure (``ok: 0``) in a well-formed reply."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        code_name: str | None = None,
        reply: Any = None,
    ):
        self.code_name = code_name
        self.reply = reply
        super().__init__(message, code)

    @classmethod
    def from_reply(cls, reply: Any) -> "CommandError":
        """Build the error from a failed command reply document."""
        code = reply.get("code")
        return cls(
            message=str(reply.get("errmsg", "Unknown error")),
            code=int(code) if code is not None else None,
            code_name=reply.get("codeName"),
            reply=reply,
        )
