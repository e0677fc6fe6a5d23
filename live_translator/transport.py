"""
Vendor-neutral contract for the remote streaming translation session.

A RemoteSession delivers inbound events, in arrival order, to the callback
given to open(). Events may arrive on any thread.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .codec import AudioFrame


@dataclass(frozen=True)
class SessionOpened:
    pass


@dataclass(frozen=True)
class SourceTranscript:
    text: str


@dataclass(frozen=True)
class TargetTranscript:
    text: str


@dataclass(frozen=True)
class AudioPayload:
    data: Union[bytes, str]
    sample_rate: Optional[int] = None
    channels: int = 1
    encoding: str = "raw"


@dataclass(frozen=True)
class Interrupted:
    pass


@dataclass(frozen=True)
class TurnComplete:
    pass


@dataclass(frozen=True)
class SessionClosed:
    pass


@dataclass(frozen=True)
class SessionError:
    detail: str


SessionEvent = Union[
    SessionOpened, SourceTranscript, TargetTranscript, AudioPayload,
    Interrupted, TurnComplete, SessionClosed, SessionError,
]

EventCallback = Callable[[SessionEvent], None]


class RemoteSession(ABC):
    """One bidirectional streaming session with the translation endpoint."""

    @abstractmethod
    def open(self, on_event: EventCallback) -> None:
        """
        Start opening the session without blocking.

        SessionOpened or SessionError is delivered through on_event later.

        Raises:
            SessionOpenError: If the session cannot be started at all
        """

    @abstractmethod
    def send(self, frame: AudioFrame) -> None:
        """Send one outbound frame. Order is preserved."""

    @abstractmethod
    def close(self) -> None:
        """Close the session. Idempotent, safe before open completes."""
