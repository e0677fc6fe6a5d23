"""
Audio resampling utilities using pysoxr.

Converts decoded inbound audio to the output device rate.
"""

import numpy as np
import soxr
import logging

logger = logging.getLogger(__name__)


def resample_float32(
    audio: np.ndarray,
    source_rate: int,
    target_rate: int
) -> np.ndarray:
    """
    Resample float32 audio from source rate to target rate.

    Args:
        audio: float32 samples, shape (frames,) or (frames, channels)
        source_rate: Source sample rate in Hz
        target_rate: Target sample rate in Hz

    Returns:
        float32 samples at target_rate with the same channel layout
    """
    if source_rate == target_rate:
        # No resampling needed
        return audio

    if len(audio) == 0:
        return np.zeros((0,) + audio.shape[1:], dtype=np.float32)

    if not validate_resample_ratio(source_rate, target_rate):
        raise ValueError(f"Unsupported resample ratio: {source_rate} Hz -> {target_rate} Hz")

    logger.debug(f"Resampling from {source_rate} Hz to {target_rate} Hz")

    resampled = soxr.resample(
        audio.astype(np.float32, copy=False),
        in_rate=source_rate,
        out_rate=target_rate,
        quality='HQ'
    )

    # Filter overshoot can leave the [-1, 1] range
    return np.clip(resampled, -1.0, 1.0).astype(np.float32, copy=False)


def validate_resample_ratio(source_rate: int, target_rate: int) -> bool:
    """
    Validate that resampling ratio is sensible.

    Args:
        source_rate: Source sample rate in Hz
        target_rate: Target sample rate in Hz

    Returns:
        True if ratio is valid
    """
    if source_rate <= 0 or target_rate <= 0:
        return False

    ratio = max(source_rate, target_rate) / min(source_rate, target_rate)

    # Allow ratios up to 8x
    return ratio <= 8.0
