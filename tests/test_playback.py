"""
Unit tests for gapless playback scheduling and the output mixer.
"""

import numpy as np
import pytest

from live_translator.playback import OutputMixer, PlaybackScheduler


class LateRenderMixer(OutputMixer):
    """Mixer whose output callback renders a block right after the first clock read."""

    def __init__(self, samplerate, late_frames):
        super().__init__(samplerate)
        self.late_frames = late_frames

    def current_time(self):
        now = super().current_time()
        if self.late_frames:
            self.render(self.late_frames)
            self.late_frames = 0
        return now


class BrokenDevice:
    def current_time(self):
        return 1.0

    def play_at(self, samples, start_time, on_ended=None):
        raise RuntimeError("device gone")


class ClockDevice:
    """Output device with a settable clock that records scheduling."""

    def __init__(self):
        self.now = 0.0
        self.played = []

    def current_time(self):
        return self.now

    def play_at(self, samples, start_time, on_ended=None):
        voice = _Voice(start_time, on_ended)
        self.played.append((start_time, voice))
        return voice


class _Voice:
    def __init__(self, start_time, on_ended):
        self.start_time = start_time
        self.on_ended = on_ended
        self.stopped = False

    def stop(self):
        self.stopped = True

    def finish(self):
        self.on_ended()


def silence(seconds, sr=100):
    return np.zeros(int(seconds * sr), dtype=np.float32)


def test_gapless_anchoring():
    """Test the second buffer anchors to the first one's end, not arrival."""
    device = ClockDevice()
    scheduler = PlaybackScheduler(device)

    first = scheduler.schedule(silence(2.0), 2.0)
    device.now = 0.5
    second = scheduler.schedule(silence(1.0), 1.0)

    assert first.start_time == 0.0
    assert second.start_time == 2.0
    assert scheduler.next_start_time == 3.0


def test_start_times_never_overlap():
    """Test start times are non-decreasing with no overlap."""
    device = ClockDevice()
    scheduler = PlaybackScheduler(device)
    durations = [0.3, 0.1, 0.7, 0.2, 0.5]
    arrivals = [0.0, 0.1, 0.2, 0.9, 1.0]

    handles = []
    for arrival, duration in zip(arrivals, durations):
        device.now = arrival
        handles.append(scheduler.schedule(silence(duration), duration))

    for prev, cur in zip(handles, handles[1:]):
        assert cur.start_time >= prev.start_time
        assert cur.start_time >= prev.end_time


def test_drained_queue_starts_at_device_time():
    """Test a buffer after a silent gap starts at the current time."""
    device = ClockDevice()
    scheduler = PlaybackScheduler(device)

    scheduler.schedule(silence(1.0), 1.0)
    device.now = 4.0
    handle = scheduler.schedule(silence(1.0), 1.0)

    assert handle.start_time == 4.0


def test_natural_end_removes_handle():
    device = ClockDevice()
    scheduler = PlaybackScheduler(device)

    handle = scheduler.schedule(silence(1.0), 1.0)
    assert scheduler.active_handles == {handle}

    device.played[0][1].finish()

    assert scheduler.active_count == 0


def test_flush_resets_timeline():
    """Test flush stops every handle and the next buffer starts at device time."""
    device = ClockDevice()
    scheduler = PlaybackScheduler(device)
    scheduler.schedule(silence(2.0), 2.0)
    scheduler.schedule(silence(2.0), 2.0)

    stopped = scheduler.flush()

    assert stopped == 2
    assert all(voice.stopped for _, voice in device.played)
    assert scheduler.active_count == 0
    assert scheduler.next_start_time == 0.0

    device.now = 5.0
    handle = scheduler.schedule(silence(1.0), 1.0)
    assert handle.start_time == 5.0


def test_flush_empty_is_safe():
    scheduler = PlaybackScheduler(ClockDevice())

    assert scheduler.flush() == 0
    assert scheduler.active_count == 0


def test_mixer_plays_at_scheduled_frame():
    """Test a voice starts at its scheduled offset within a block."""
    mixer = OutputMixer(samplerate=100)
    mixer.play_at(np.full(5, 0.5, dtype=np.float32), start_time=0.03)

    block = mixer.render(10)

    expected = np.zeros(10, dtype=np.float32)
    expected[3:8] = 0.5
    np.testing.assert_allclose(block[:, 0], expected)
    assert mixer.current_time() == pytest.approx(0.1)


def test_mixer_spans_blocks_and_fires_ended():
    ended = []
    mixer = OutputMixer(samplerate=100)
    mixer.play_at(np.full(15, 0.25, dtype=np.float32), 0.0, on_ended=lambda: ended.append(True))

    first = mixer.render(10)
    assert ended == []
    second = mixer.render(10)

    assert np.all(first[:, 0] == 0.25)
    assert np.all(second[:5, 0] == 0.25)
    assert np.all(second[5:, 0] == 0.0)
    assert ended == [True]
    assert mixer.pending() == 0


def test_mixer_late_voice_starts_at_block_head():
    mixer = OutputMixer(samplerate=100)
    mixer.render(10)

    mixer.play_at(np.full(4, 0.5, dtype=np.float32), start_time=0.0)
    block = mixer.render(10)

    assert np.all(block[:4, 0] == 0.5)
    assert np.all(block[4:, 0] == 0.0)


def test_mixer_stop_and_release_skip_ended_callback():
    ended = []
    mixer = OutputMixer(samplerate=100)
    voice = mixer.play_at(np.ones(50, dtype=np.float32) * 0.1, 0.0, on_ended=lambda: ended.append(1))
    mixer.play_at(np.ones(50, dtype=np.float32) * 0.1, 0.0, on_ended=lambda: ended.append(2))

    voice.stop()
    assert mixer.pending() == 1
    mixer.release()
    mixer.render(100)

    assert ended == []
    assert mixer.pending() == 0


def test_mixer_output_clipped():
    mixer = OutputMixer(samplerate=100)
    mixer.play_at(np.full(10, 0.8, dtype=np.float32), 0.0)
    mixer.play_at(np.full(10, 0.8, dtype=np.float32), 0.0)

    block = mixer.render(10)

    assert block.max() == 1.0


def test_scheduler_with_mixer_end_to_end():
    """Test scheduled buffers play back to back and leave the active set."""
    mixer = OutputMixer(samplerate=100)
    scheduler = PlaybackScheduler(mixer)

    scheduler.schedule(np.full(10, 0.1, dtype=np.float32), 0.1)
    scheduler.schedule(np.full(10, 0.2, dtype=np.float32), 0.1)

    block = mixer.render(20)

    np.testing.assert_allclose(block[:10, 0], 0.1)
    np.testing.assert_allclose(block[10:, 0], 0.2)
    assert scheduler.active_count == 0


def test_render_between_clock_read_and_play_does_not_overlap():
    """Test a block rendered mid-schedule neither sums buffers nor misreports starts."""
    mixer = LateRenderMixer(samplerate=100, late_frames=10)
    scheduler = PlaybackScheduler(mixer)

    first = scheduler.schedule(np.full(10, 0.1, dtype=np.float32), 0.1)
    second = scheduler.schedule(np.full(10, 0.2, dtype=np.float32), 0.1)

    block = mixer.render(20)

    np.testing.assert_allclose(block[:10, 0], 0.1)
    np.testing.assert_allclose(block[10:, 0], 0.2)
    assert first.start_time == pytest.approx(0.1)
    assert second.start_time == pytest.approx(first.end_time)
    assert scheduler.next_start_time == pytest.approx(0.3)


def test_mixer_reports_clamped_start():
    mixer = OutputMixer(samplerate=100)
    mixer.render(10)

    voice = mixer.play_at(np.zeros(4, dtype=np.float32), start_time=0.02)

    assert voice.start_time == pytest.approx(0.1)


def test_failed_play_leaves_scheduler_untouched():
    """Test a device error propagates without registering a handle."""
    scheduler = PlaybackScheduler(BrokenDevice())

    with pytest.raises(RuntimeError, match="device gone"):
        scheduler.schedule(silence(1.0), 1.0)

    assert scheduler.active_count == 0
    assert scheduler.next_start_time == 0.0
