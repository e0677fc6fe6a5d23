"""
PCM16 codec for outbound capture frames and inbound synthesized audio.

Outbound: float32 mono samples in [-1, 1] -> signed 16-bit little-endian bytes.
Inbound: base64 or raw PCM16 payloads -> normalized float32 sample buffers.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .errors import DecodeError
from .resample import resample_float32

logger = logging.getLogger(__name__)

PCM16_DTYPE = np.dtype('<i2')


@dataclass(frozen=True)
class AudioFrame:
    """Wire-ready outbound audio frame."""
    data: bytes
    mime_type: str


@dataclass(frozen=True)
class DecodedBuffer:
    """Playback-ready audio, shape (frames, channels)."""
    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return self.samples.shape[1]

    @property
    def frames(self) -> int:
        return self.samples.shape[0]

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.frames / self.sample_rate


def pcm_mime_type(sample_rate: int) -> str:
    return f"audio/pcm;rate={sample_rate}"


def encode_pcm16(samples: Union[np.ndarray, Sequence[float]]) -> bytes:
    """
    Convert float amplitudes to signed 16-bit little-endian PCM.

    Out-of-range values are clamped to full scale, NaN encodes as silence.

    Args:
        samples: Mono float samples in [-1, 1]

    Returns:
        Raw PCM16 bytes, two per sample
    """
    audio = np.asarray(samples, dtype=np.float32).reshape(-1)
    audio = np.nan_to_num(audio, nan=0.0, posinf=1.0, neginf=-1.0)
    audio = np.clip(audio, -1.0, 1.0)
    return (audio * 32767.0).astype(PCM16_DTYPE).tobytes()


def encode_frame(samples: Union[np.ndarray, Sequence[float]], sample_rate: int) -> AudioFrame:
    """Encode one capture window into an outbound frame."""
    return AudioFrame(data=encode_pcm16(samples), mime_type=pcm_mime_type(sample_rate))


def _payload_bytes(payload: Union[bytes, bytearray, str], encoding: str) -> bytes:
    if encoding == "base64":
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Invalid base64 audio payload: {e}") from e
    if encoding != "raw":
        raise DecodeError(f"Unknown payload encoding: {encoding!r}")
    if isinstance(payload, str):
        raise DecodeError("Raw audio payload must be bytes")
    return bytes(payload)


def decode_pcm16(
    payload: Union[bytes, bytearray, str],
    sample_rate: int,
    channels: int = 1,
    output_rate: Optional[int] = None,
    encoding: str = "raw"
) -> DecodedBuffer:
    """
    Decode a PCM16 payload into a float32 sample buffer.

    Args:
        payload: Raw PCM16 bytes, or base64 text when encoding='base64'
        sample_rate: Sample rate of the payload in Hz
        channels: Interleaved channel count of the payload
        output_rate: Resample to this rate if it differs from sample_rate
        encoding: 'raw' or 'base64'

    Returns:
        DecodedBuffer with samples shaped (frames, channels)

    Raises:
        DecodeError: If the payload is malformed or truncated
    """
    if sample_rate <= 0 or channels <= 0:
        raise DecodeError(f"Invalid audio format: sr={sample_rate}, ch={channels}")

    data = _payload_bytes(payload, encoding)

    if not data:
        raise DecodeError("Empty audio payload")
    if len(data) % PCM16_DTYPE.itemsize:
        raise DecodeError(f"Truncated PCM16 payload: {len(data)} bytes")

    pcm = np.frombuffer(data, dtype=PCM16_DTYPE)
    if pcm.size % channels:
        raise DecodeError(f"{pcm.size} samples do not split into {channels} channels")

    samples = (pcm.astype(np.float32) / 32768.0).reshape(-1, channels)

    if output_rate and output_rate != sample_rate:
        try:
            samples = resample_float32(samples, sample_rate, output_rate)
        except ValueError as e:
            raise DecodeError(f"Cannot convert payload to {output_rate} Hz: {e}") from e
        sample_rate = output_rate

    return DecodedBuffer(samples=samples, sample_rate=sample_rate)
