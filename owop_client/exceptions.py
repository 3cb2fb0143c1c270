"""
Exception hierarchy for the pixel world client.
"""


class OwopClientError(Exception):
    """Base class for all client errors."""


class ProtocolError(OwopClientError):
    """The server sent something the client cannot make sense of."""


class FrameDecodeError(ProtocolError):
    """A binary frame is truncated or carries an invalid field."""

    def __init__(self, message: str, opcode: int = None):
        super().__init__(message)
        self.opcode = opcode


class RLEDecodeError(ProtocolError):
    """A compressed chunk payload does not expand to its declared length."""


class SessionDestroyedError(OwopClientError):
    """The session was destroyed and can no longer be used."""
