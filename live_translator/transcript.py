"""
Aggregation of incremental transcript fragments into conversational turns.
"""

import enum
import itertools
import threading
from dataclasses import dataclass
from typing import Optional


class Track(str, enum.Enum):
    SOURCE = "source"
    TARGET = "target"


@dataclass(frozen=True)
class Turn:
    """One finished exchange: spoken text and its translation."""
    id: int
    source: str
    target: str


class TranscriptAggregator:
    """
    Accumulates source/target fragments until the remote side ends a turn.
    """

    def __init__(self):
        self._source = ""
        self._target = ""
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def source_text(self) -> str:
        with self._lock:
            return self._source

    @property
    def target_text(self) -> str:
        with self._lock:
            return self._target

    def append_fragment(self, track: Track, text: str):
        """Concatenate a fragment onto its track."""
        with self._lock:
            if Track(track) is Track.SOURCE:
                self._source += text
            else:
                self._target += text

    def complete_turn(self) -> Optional[Turn]:
        """
        Finalize the current turn.

        Returns:
            Turn with the accumulated text, or None when both tracks are blank
        """
        with self._lock:
            if not self._source.strip() and not self._target.strip():
                return None
            turn = Turn(id=next(self._ids), source=self._source, target=self._target)
            self._source = ""
            self._target = ""
            return turn

    def clear(self):
        with self._lock:
            self._source = ""
            self._target = ""
