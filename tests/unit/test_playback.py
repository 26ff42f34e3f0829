"""Unit tests for PyAudioPlayback class."""

import time

import pytest
import numpy as np

pyaudio = pytest.importorskip("pyaudio")

from overdub.audio.playback import PyAudioPlayback, FRAMES_PER_WRITE  # noqa: E402
from overdub.models.audio import SampleBuffer  # noqa: E402
from overdub.models.mix import PlaybackPlan, ScheduledBuffer  # noqa: E402


def make_plan(start_at, *buffers):
    entries = [ScheduledBuffer(source_id=f"t{i}", buffer=buffer, start_at=start_at)
               for i, buffer in enumerate(buffers)]
    return PlaybackPlan(start_at=start_at, entries=entries,
                        duration_seconds=max(b.duration_seconds for b in buffers))


@pytest.mark.unit
class TestPyAudioPlayback:
    """Test cases for PyAudioPlayback class."""

    def test_every_entry_gets_an_output_stream(self, mock_pyaudio):
        playback = PyAudioPlayback()
        plan = make_plan(time.monotonic() + 0.05,
                         SampleBuffer.silent(100, 2, 8000),
                         SampleBuffer.silent(100, 2, 44100))

        playback.schedule(plan)
        playback.wait(timeout=2.0)

        rates = [call.kwargs["rate"] for call in mock_pyaudio['instance'].open.call_args_list]
        assert rates == [8000, 44100]
        assert all(call.kwargs["output"] for call in mock_pyaudio['instance'].open.call_args_list)
        assert mock_pyaudio['stream'].close.call_count == 2
        mock_pyaudio['instance'].terminate.assert_called_once()

    def test_writes_quantized_frames_after_start(self, mock_pyaudio):
        playback = PyAudioPlayback()
        frames = FRAMES_PER_WRITE + 10
        buffer = SampleBuffer(np.full((frames, 2), 0.5), 8000)
        start_at = time.monotonic() + 0.1

        playback.schedule(make_plan(start_at, buffer))
        assert not mock_pyaudio['stream'].write.called
        playback.wait(timeout=2.0)

        writes = [call.args[0] for call in mock_pyaudio['stream'].write.call_args_list]
        assert len(writes) == 2
        assert len(writes[0]) == FRAMES_PER_WRITE * 2 * 2
        assert np.frombuffer(b"".join(writes), dtype="<i2").tolist() == [16384] * frames * 2

    def test_stop_before_start_writes_nothing(self, mock_pyaudio):
        playback = PyAudioPlayback()

        playback.schedule(make_plan(time.monotonic() + 5.0, SampleBuffer.silent(100, 2, 8000)))
        playback.stop()

        mock_pyaudio['stream'].write.assert_not_called()
        mock_pyaudio['stream'].close.assert_called_once()

    def test_failed_arming_closes_opened_streams(self, mock_pyaudio):
        mock_pyaudio['instance'].open.side_effect = [
            mock_pyaudio['stream'],
            OSError(pyaudio.paInvalidSampleRate, "Invalid sample rate"),
        ]
        playback = PyAudioPlayback()
        plan = make_plan(time.monotonic() + 1.0,
                         SampleBuffer.silent(100, 2, 8000),
                         SampleBuffer.silent(100, 2, 12345))

        with pytest.raises(OSError):
            playback.schedule(plan)

        mock_pyaudio['stream'].close.assert_called_once()
        mock_pyaudio['instance'].terminate.assert_called_once()
        assert playback.pyaudio_instance is None
        assert playback.threads == []
