"""
Audio device enumeration and stream management using sounddevice.

CaptureDevice feeds fixed-size float32 windows from the microphone;
OutputContext drives an OutputMixer from the output stream callback.
"""

import numpy as np
import sounddevice as sd
from typing import Optional, Callable, List
import logging

from .errors import AcquisitionError
from .playback import OutputMixer

logger = logging.getLogger(__name__)


def list_audio_devices() -> List[dict]:
    """
    Enumerate all available audio devices.

    Returns:
        List of device dictionaries with name, index, channels, sample rate
    """
    devices = []
    for idx, dev in enumerate(sd.query_devices()):
        devices.append({
            "index": idx,
            "name": dev['name'],
            "max_input_channels": dev['max_input_channels'],
            "max_output_channels": dev['max_output_channels'],
            "default_samplerate": dev['default_samplerate'],
            "hostapi": sd.query_hostapis(dev['hostapi'])['name']
        })
    return devices


def find_device_by_name(name: str, input_device: bool = True) -> Optional[int]:
    """
    Find device index by name (case-insensitive substring match).

    Args:
        name: Device name or substring
        input_device: True for input, False for output

    Returns:
        Device index or None if not found
    """
    devices = list_audio_devices()
    name_lower = name.lower()

    for dev in devices:
        if name_lower in dev['name'].lower():
            if input_device and dev['max_input_channels'] > 0:
                return dev['index']
            elif not input_device and dev['max_output_channels'] > 0:
                return dev['index']

    return None


class CaptureDevice:
    """
    Microphone input stream delivering mono float32 windows.

    The callback receives a copy of each window of `blocksize` samples.
    """

    def __init__(
        self,
        callback: Callable[[np.ndarray], None],
        device: Optional[int] = None,
        samplerate: int = 16000,
        blocksize: int = 4096
    ):
        """
        Initialize capture device.

        Args:
            callback: Function called with mono float32 windows
            device: Device index (None for default)
            samplerate: Capture sample rate in Hz (default 16000)
            blocksize: Samples per window (default 4096)
        """
        self.device = device
        self.samplerate = samplerate
        self.blocksize = blocksize
        self.callback = callback
        self.stream: Optional[sd.InputStream] = None

        logger.info(
            f"CaptureDevice: device={device}, sr={samplerate}, blocksize={blocksize}"
        )

    def _stream_callback(self, indata, frames, time_info, status):
        """Internal callback for sounddevice stream."""
        if status:
            logger.warning(f"Input stream status: {status}")

        try:
            self.callback(indata[:, 0].copy())
        except Exception as e:
            logger.error(f"Error in capture callback: {e}", exc_info=True)

    def start(self):
        """
        Open and start the input stream.

        Raises:
            AcquisitionError: If the device is denied or unavailable
        """
        if self.stream is not None:
            logger.warning("Capture already started")
            return

        try:
            self.stream = sd.InputStream(
                device=self.device,
                channels=1,
                samplerate=self.samplerate,
                blocksize=self.blocksize,
                dtype=np.float32,
                callback=self._stream_callback
            )
            self.stream.start()
        except Exception as e:
            self.stream = None
            raise AcquisitionError(f"Microphone unavailable: {e}") from e

        logger.info("Capture started")

    def release(self):
        """Stop and close the input stream."""
        if self.stream is not None:
            stream, self.stream = self.stream, None
            stream.stop()
            stream.close()
            logger.info("Capture released")


class OutputContext:
    """
    Output stream whose callback renders an OutputMixer.

    Exposes the mixer's device clock and scheduling to the PlaybackScheduler.
    """

    def __init__(
        self,
        device: Optional[int] = None,
        samplerate: int = 24000,
        channels: int = 1
    ):
        """
        Initialize output context.

        Args:
            device: Device index (None for default)
            samplerate: Sample rate in Hz (default 24000)
            channels: Number of output channels (default 1)
        """
        self.device = device
        self.samplerate = samplerate
        self.channels = channels
        self.mixer = OutputMixer(samplerate, channels)
        self.stream: Optional[sd.OutputStream] = None

        logger.info(f"OutputContext: device={device}, sr={samplerate}, ch={channels}")

    def _stream_callback(self, outdata, frames, time_info, status):
        if status:
            logger.warning(f"Output stream status: {status}")
        outdata[:] = self.mixer.render(frames)

    def start(self):
        """
        Open and start the output stream.

        Raises:
            AcquisitionError: If the output device cannot be opened
        """
        if self.stream is not None:
            logger.warning("Output already started")
            return

        try:
            self.stream = sd.OutputStream(
                device=self.device,
                channels=self.channels,
                samplerate=self.samplerate,
                dtype=np.float32,
                callback=self._stream_callback
            )
            self.stream.start()
        except Exception as e:
            self.stream = None
            raise AcquisitionError(f"Output device unavailable: {e}") from e

        logger.info("Output started")

    def current_time(self) -> float:
        return self.mixer.current_time()

    def play_at(self, samples, start_time, on_ended=None):
        return self.mixer.play_at(samples, start_time, on_ended)

    def release(self):
        """Stop the stream and drop all pending buffers."""
        self.mixer.release()
        if self.stream is not None:
            stream, self.stream = self.stream, None
            stream.stop()
            stream.close()
            logger.info("Output released")
