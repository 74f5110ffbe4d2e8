"""Core error types for :mod:`rxgateway`.

The hierarchy follows how failures are handled by the client:

* :class:`TransportError` -- socket I/O failures and close frames. The client
  recovers from these with resume/reconnect and only raises them once every
  recovery path is exhausted.
* :class:`ProtocolError` -- a frame arrived but broke the expected handshake
  or resume sequence. Raised immediately.
* :class:`OtherError` -- malformed URLs and use of a client that can no
  longer serve events.
"""


class GatewayError(Exception):
    """Base class for all rxgateway exceptions."""

    def __init__(
        self,
        note: str,
        source: str = "Unknown",
        exception: BaseException | None = None,
    ):
        super().__init__(note)
        self.note = note
        self.source = source
        self.exception = exception

    def __str__(self):
        if self.exception is None:
            return f"<{self.source}> {self.note}"
        return f"<{self.source}> {self.note}: {self.exception}"


class TransportError(GatewayError):
    """Socket-level failure, including a close frame sent by the server."""

    # Close code meaning the session must not be resumed.
    NO_RESUME_CODE = 4006

    def __init__(
        self,
        note: str,
        source: str = "Unknown",
        exception: BaseException | None = None,
        code: int | None = None,
        reason: str = "",
    ):
        super().__init__(note, source=source, exception=exception)
        self.code = code
        self.reason = reason

    @property
    def forbids_resume(self) -> bool:
        return self.code == self.NO_RESUME_CODE

    def __str__(self):
        text = super().__str__()
        if self.code is not None:
            text += f" (close code {self.code}"
            text += f": {self.reason})" if self.reason else ")"
        return text


class ProtocolError(GatewayError):
    """A frame violated the handshake or resume sequence."""


class OtherError(GatewayError):
    """Invalid URLs and requests against an unusable client."""


class ClientClosedError(OtherError):
    """The client was shut down."""
