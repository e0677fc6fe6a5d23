"""
Gapless, interruption-aware playback of synthesized audio.

OutputMixer is the software device clock fed by the output stream callback.
PlaybackScheduler anchors each buffer to the computed end of the previous one
and can flush everything on interruption.
"""

import logging
import threading
from typing import Callable, List, Optional, Protocol, Set

import numpy as np

logger = logging.getLogger(__name__)


class Voice(Protocol):
    start_time: float

    def stop(self) -> None: ...


class OutputDevice(Protocol):
    """What the scheduler needs from an output context."""

    def current_time(self) -> float: ...

    def play_at(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Optional[Callable[[], None]] = None
    ) -> Voice: ...


class _MixerVoice:
    """One buffer scheduled on an OutputMixer."""

    def __init__(self, mixer: "OutputMixer", samples: np.ndarray, start_frame: int,
                 on_ended: Optional[Callable[[], None]]):
        self._mixer = mixer
        self.samples = samples
        self.start_frame = start_frame
        self.position = 0
        self.on_ended = on_ended

    @property
    def start_time(self) -> float:
        return self.start_frame / self._mixer.samplerate

    def stop(self):
        self._mixer._remove(self)


class OutputMixer:
    """
    Mixes scheduled buffers into output blocks on a frame-counted clock.

    render() is called from the audio callback thread; play_at() and
    stop() from any thread. Ended callbacks run outside the mixer lock.
    """

    def __init__(self, samplerate: int, channels: int = 1):
        self.samplerate = samplerate
        self.channels = channels
        self._frames_rendered = 0
        self._voices: List[_MixerVoice] = []
        self._lock = threading.Lock()

    def current_time(self) -> float:
        """Device clock in seconds since the mixer started."""
        with self._lock:
            return self._frames_rendered / self.samplerate

    def play_at(
        self,
        samples: np.ndarray,
        start_time: float,
        on_ended: Optional[Callable[[], None]] = None
    ) -> _MixerVoice:
        """
        Schedule samples to start at an absolute device time.

        Args:
            samples: float32, shape (frames,) or (frames, channels)
            start_time: Absolute start in seconds on this mixer's clock
            on_ended: Called once after the last frame was rendered

        Returns:
            Voice handle that can be stopped. A start time the clock has
            already passed is moved to the next rendered frame, and the
            voice reports where it will actually play.
        """
        samples = np.asarray(samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        if samples.shape[1] != self.channels:
            # Mono content on a multi-channel device is duplicated, otherwise downmixed
            samples = np.repeat(samples.mean(axis=1, keepdims=True), self.channels, axis=1)

        with self._lock:
            start_frame = max(int(round(start_time * self.samplerate)), self._frames_rendered)
            voice = _MixerVoice(self, samples, start_frame, on_ended)
            self._voices.append(voice)
        return voice

    def render(self, frames: int) -> np.ndarray:
        """
        Produce the next block of output and advance the clock.

        Args:
            frames: Number of frames requested by the device

        Returns:
            float32 block shaped (frames, channels)
        """
        out = np.zeros((frames, self.channels), dtype=np.float32)
        finished: List[_MixerVoice] = []

        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames

            for voice in self._voices:
                if voice.start_frame >= block_end:
                    continue
                # Late buffers start at the head of the block
                offset = max(voice.start_frame - block_start, 0)
                count = min(frames - offset, voice.samples.shape[0] - voice.position)
                if count > 0:
                    out[offset:offset + count] += voice.samples[voice.position:voice.position + count]
                    voice.position += count
                if voice.position >= voice.samples.shape[0]:
                    finished.append(voice)

            for voice in finished:
                self._voices.remove(voice)
            self._frames_rendered = block_end

        for voice in finished:
            if voice.on_ended:
                try:
                    voice.on_ended()
                except Exception as e:
                    logger.error(f"Error in playback ended callback: {e}")

        np.clip(out, -1.0, 1.0, out=out)
        return out

    def pending(self) -> int:
        with self._lock:
            return len(self._voices)

    def release(self):
        """Drop every scheduled voice without firing ended callbacks."""
        with self._lock:
            self._voices.clear()

    def _remove(self, voice: _MixerVoice):
        with self._lock:
            if voice in self._voices:
                self._voices.remove(voice)


class PlaybackHandle:
    """One buffer scheduled on the output device."""

    def __init__(self, start_time: float, duration: float):
        self.start_time = start_time
        self.duration = duration
        self.voice: Optional[Voice] = None
        self.stopped = False

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def stop(self):
        self.stopped = True
        if self.voice is not None:
            self.voice.stop()

    def __repr__(self):
        return f"PlaybackHandle(start={self.start_time:.3f}, duration={self.duration:.3f})"


class PlaybackScheduler:
    """
    Schedules decoded buffers back-to-back with no gaps and no overlap.

    Each buffer starts at max(next_start_time, device time), so jitter in
    arrival is absorbed as long as the queue has not drained.
    """

    def __init__(self, device: OutputDevice):
        self.device = device
        self._next_start_time = 0.0
        self._active: Set[PlaybackHandle] = set()
        self._lock = threading.Lock()

    @property
    def next_start_time(self) -> float:
        with self._lock:
            return self._next_start_time

    @property
    def active_handles(self) -> Set[PlaybackHandle]:
        with self._lock:
            return set(self._active)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def schedule(self, samples: np.ndarray, duration: float) -> PlaybackHandle:
        """
        Schedule a buffer right after everything already scheduled.

        Args:
            samples: Decoded float32 samples
            duration: Buffer duration in seconds

        Returns:
            Handle registered in the active set until playback ends
        """
        with self._lock:
            start_at = max(self._next_start_time, self.device.current_time())
            handle = PlaybackHandle(start_at, duration)
            handle.voice = self.device.play_at(
                samples, start_at, on_ended=lambda: self._on_ended(handle)
            )
            # The device may have moved a late start forward
            handle.start_time = handle.voice.start_time
            self._active.add(handle)
            self._next_start_time = handle.end_time

        logger.debug(f"Scheduled {duration:.3f}s at t={handle.start_time:.3f}")
        return handle

    def flush(self) -> int:
        """
        Stop every active buffer and reset the timeline.

        Returns:
            Number of handles stopped
        """
        with self._lock:
            handles = list(self._active)
            self._active.clear()
            self._next_start_time = 0.0

        for handle in handles:
            try:
                handle.stop()
            except Exception as e:
                logger.warning(f"Failed to stop {handle}: {e}")

        if handles:
            logger.info(f"Flushed {len(handles)} playback buffer(s)")
        return len(handles)

    def _on_ended(self, handle: PlaybackHandle):
        with self._lock:
            self._active.discard(handle)
