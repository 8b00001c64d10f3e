"""
Exception hierarchy for the mount driver.

Every failure surfaced by the transport, the command layers or the driver
facade is a subclass of :class:`MountError`, so host adapters can catch one
type and report an alert state to their clients.
"""


class MountError(Exception):
    """Base class for all mount driver errors."""


class TransportError(MountError):
    """Read timeout, write failure or closed serial/TCP channel."""


class ProtocolMismatch(MountError):
    """The mount answered with an unexpected length or payload."""

    def __init__(self, message: str, frame: str = "", response: str = ""):
        super().__init__(message)
        self.frame = frame
        self.response = response


class InvalidState(MountError):
    """The operation is not legal in the current mount state."""


class OutOfRange(MountError):
    """A coordinate or rate lies outside the mechanical limits."""


class NotSupported(MountError):
    """The connected firmware generation does not provide the feature."""


class InitializationRequired(MountError):
    """Time, location and mount initialisation must all complete first."""


class ReadTimeout(TransportError):
    """Nothing (or not enough) arrived before the read deadline."""
