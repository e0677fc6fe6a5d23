"""
Logging setup and session diagnostics: decode latency, inbound audio dumps,
device listings.
"""

import logging
import time
import wave
from collections import deque
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

CONSOLE_FORMAT = '%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s'
FILE_FORMAT = '%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s:%(lineno)d: %(message)s'


def setup_logger(
    level: str = "INFO",
    log_file: Optional[str] = None,
    name: str = "live_translator"
) -> logging.Logger:
    """
    Route the package logger to the console and, optionally, a rotating file.

    Thread names are included because capture, output, SDK and event-worker
    threads all log into the same stream.
    """
    root = logging.getLogger(name)
    root.setLevel(getattr(logging, level.upper()))
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        rotating.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(rotating)

    return root


class LatencyStats:
    """Rolling window of per-chunk latencies in milliseconds."""

    def __init__(self, label: str, window: int = 1000):
        self.label = label
        self._samples: Deque[float] = deque(maxlen=window)

    def add(self, ms: float):
        self._samples.append(ms)

    def __len__(self):
        return len(self._samples)

    def summary(self) -> Dict[str, float]:
        if not self._samples:
            return {}
        values = np.fromiter(self._samples, dtype=np.float64)
        p50, p95 = np.percentile(values, [50, 95])
        return {
            "count": len(values),
            "mean": float(values.mean()),
            "p50": float(p50),
            "p95": float(p95),
            "max": float(values.max()),
        }

    def log_summary(self):
        stats = self.summary()
        if stats:
            logger.info(
                f"{self.label}: n={stats['count']}, mean={stats['mean']:.1f}ms, "
                f"p50={stats['p50']:.1f}ms, p95={stats['p95']:.1f}ms, max={stats['max']:.1f}ms"
            )


@contextmanager
def timed(stats: LatencyStats) -> Iterator[None]:
    """Record the wall time of the enclosed block into stats."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        stats.add(elapsed_ms)
        logger.debug(f"{stats.label}: {elapsed_ms:.2f} ms")


def dump_wav(samples: np.ndarray, sample_rate: int, directory: str, prefix: str) -> Optional[Path]:
    """
    Write float samples to <directory>/<prefix>_<ms timestamp>.wav as PCM16.

    Failures are logged and reported as None; a dump never interrupts playback.
    """
    path = Path(directory) / f"{prefix}_{int(time.time() * 1000)}.wav"
    audio = np.asarray(samples, dtype=np.float32)
    channels = 1 if audio.ndim == 1 else audio.shape[1]

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with wave.open(str(path), 'wb') as wf:
            wf.setnchannels(channels)
            wf.setsampwidth(2)
            wf.setframerate(sample_rate)
            wf.writeframes((np.clip(audio, -1.0, 1.0) * 32767).astype('<i2').tobytes())
    except (OSError, wave.Error) as e:
        logger.error(f"Failed to dump {prefix} audio: {e}")
        return None

    logger.debug(f"Dumped {len(audio)} frames @ {sample_rate} Hz to {path}")
    return path


def format_device_list(devices: List[dict]) -> str:
    """One line per device, marking which directions it can serve."""
    lines = ["", "Audio devices:"]
    for dev in devices:
        roles = []
        if dev['max_input_channels'] > 0:
            roles.append(f"mic {dev['max_input_channels']}ch")
        if dev['max_output_channels'] > 0:
            roles.append(f"out {dev['max_output_channels']}ch")
        lines.append(
            f"  [{dev['index']:>2}] {dev['name']} ({', '.join(roles) or 'unusable'}; "
            f"{dev['default_samplerate']:.0f} Hz; {dev['hostapi']})"
        )
    return "\n".join(lines)
