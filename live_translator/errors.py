"""
Error taxonomy for the live translation session.

Only AcquisitionError, SessionOpenError and TransportError ever reach the
user-visible status. DecodeError and TeardownError are logged and absorbed.
"""


class LiveTranslatorError(Exception):
    """Base class for session errors."""


class AcquisitionError(LiveTranslatorError):
    """Capture device denied or unavailable."""


class SessionOpenError(LiveTranslatorError):
    """Remote session could not be opened."""


class TransportError(LiveTranslatorError):
    """Remote session failed after it was opened."""


class DecodeError(LiveTranslatorError):
    """Inbound audio payload is malformed or truncated."""


class TeardownError(LiveTranslatorError):
    """A device or session release step failed during teardown."""
