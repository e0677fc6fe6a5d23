"""
Pytest configuration and fixtures.
"""

import os
import time

import numpy as np
import pytest

from live_translator.errors import AcquisitionError
from live_translator.playback import OutputMixer
from live_translator.transport import RemoteSession


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SPEECH_KEY"] = "test_key_for_testing"
    os.environ["SPEECH_REGION"] = "westeurope"


@pytest.fixture
def mock_config():
    """Provide a mock configuration for testing."""
    from live_translator.config import Config, AudioConfig, SpeechConfig, SessionConfig

    return Config(
        audio=AudioConfig(output_sr=24000, payload_sr=24000, pending_frame_limit=3),
        speech=SpeechConfig(
            speech_key="test_key",
            speech_region="westeurope"
        ),
        session=SessionConfig(close_timeout_s=1.0)
    )


class FakeRemote(RemoteSession):
    """Records frames and lets tests inject inbound events."""

    def __init__(self, open_error=None, close_error=None):
        self.open_error = open_error
        self.close_error = close_error
        self.on_event = None
        self.sent = []
        self.close_calls = 0

    def open(self, on_event):
        if self.open_error:
            raise self.open_error
        self.on_event = on_event

    def send(self, frame):
        self.sent.append(frame)

    def close(self):
        self.close_calls += 1
        if self.close_error:
            raise self.close_error

    def emit(self, *events):
        for event in events:
            self.on_event(event)


class FakeCapture:
    def __init__(self, callback, start_error=None):
        self.callback = callback
        self.start_error = start_error
        self.started = False
        self.release_calls = 0

    def start(self):
        if self.start_error:
            raise self.start_error
        self.started = True

    def push(self, value: float, size: int = 4):
        self.callback(np.full(size, value, dtype=np.float32))

    def release(self):
        self.release_calls += 1


class FakeOutput:
    """Output context over a real mixer with a test-controlled clock."""

    def __init__(self, samplerate=24000):
        self.mixer = OutputMixer(samplerate)
        self.now = 0.0
        self.started = False
        self.release_calls = 0

    def start(self):
        self.started = True

    def current_time(self):
        return self.now

    def play_at(self, samples, start_time, on_ended=None):
        return self.mixer.play_at(samples, start_time, on_ended)

    def release(self):
        self.release_calls += 1
        self.mixer.release()


class Harness:
    """A SessionController wired to fakes."""

    def __init__(self, config, open_error=None, capture_error=None, close_error=None):
        from live_translator.session import SessionController

        self.remotes = []
        self.captures = []
        self.outputs = []
        self.statuses = []
        self.turns = []
        self.fragments = []
        self.open_error = open_error
        self.capture_error = capture_error
        self.close_error = close_error

        self.controller = SessionController(
            config,
            remote_factory=self._make_remote,
            capture_factory=self._make_capture,
            output_factory=self._make_output
        )
        self.controller.subscribe(
            on_status=self.statuses.append,
            on_turn=self.turns.append,
            on_fragment=lambda s, t: self.fragments.append((s, t))
        )

    def _make_remote(self):
        remote = FakeRemote(self.open_error, self.close_error)
        self.remotes.append(remote)
        return remote

    def _make_capture(self, callback):
        capture = FakeCapture(callback, self.capture_error)
        self.captures.append(capture)
        return capture

    def _make_output(self):
        output = FakeOutput()
        self.outputs.append(output)
        return output

    @property
    def remote(self):
        return self.remotes[-1]

    @property
    def capture(self):
        return self.captures[-1]

    @property
    def output(self):
        return self.outputs[-1]


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def harness(mock_config):
    h = Harness(mock_config)
    yield h
    h.controller.stop()


@pytest.fixture
def make_harness(mock_config):
    created = []

    def _make(**kwargs):
        h = Harness(mock_config, **kwargs)
        created.append(h)
        return h

    yield _make
    for h in created:
        h.controller.stop()


@pytest.fixture
def drain():
    """Wait until a session's worker has handled every queued event."""
    def _drain(session, timeout=2.0):
        assert wait_until(lambda: session.pending_events == 0, timeout), "events not drained"
    return _drain


@pytest.fixture
def acquisition_error():
    return AcquisitionError("Permission denied")
