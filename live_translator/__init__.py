"""
Live Translator Package.

Real-time speech translation: streams microphone audio to Azure Speech,
plays the synthesized translation gaplessly and collects transcript turns.
"""

__version__ = "0.1.0"
__all__ = [
    "Config",
    "SessionController",
    "Status",
    "TranscriptAggregator",
    "Turn",
    "PlaybackScheduler",
    "OutputMixer",
    "encode_pcm16",
    "decode_pcm16",
]

from .config import Config
from .codec import encode_pcm16, decode_pcm16
from .playback import PlaybackScheduler, OutputMixer
from .transcript import TranscriptAggregator, Turn
from .session import SessionController, Status
