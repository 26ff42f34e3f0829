"""Pytest configuration and fixtures for overdub tests."""

import pytest
import tempfile
import logging
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import Mock, patch
import numpy as np

from overdub.audio.decoder import AudioDecoder
from overdub.audio.device import CaptureDevice, DeviceHandle, next_handle_id
from overdub.errors import DecodeError, DeviceUnavailable
from overdub.models.audio import SampleBuffer, EncodedAudioChunk, CaptureConstraints
from overdub.models.mix import MixInput, MixRequest


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    for marker in ("unit", "integration", "slow"):
        config.addinivalue_line("markers", f"{marker}: {marker} tests")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeCaptureDevice(CaptureDevice):
    """Capture device driven by the test instead of hardware."""

    def __init__(self, failure: Optional[DeviceUnavailable] = None):
        self.failure = failure
        self.acquired: List[DeviceHandle] = []
        self.released: List[DeviceHandle] = []
        self.paused: List[DeviceHandle] = []
        self.resumed: List[DeviceHandle] = []
        self.on_chunk = None
        self.on_error = None

    def acquire(self, constraints, on_chunk, on_error):
        if self.failure:
            raise self.failure
        handle = DeviceHandle(handle_id=next_handle_id(), constraints=constraints,
                              mime_type=constraints.mime_type)
        self.on_chunk = on_chunk
        self.on_error = on_error
        self.acquired.append(handle)
        return handle

    def pause(self, handle):
        self.paused.append(handle)

    def resume(self, handle):
        self.resumed.append(handle)

    def release(self, handle):
        self.released.append(handle)

    def emit(self, data: bytes, mime_type: Optional[str] = None) -> None:
        handle = self.acquired[-1]
        self.on_chunk(EncodedAudioChunk(data=data, mime_type=mime_type or handle.mime_type))

    @property
    def held(self) -> bool:
        return len(self.acquired) > len(self.released)


class StateCollector:
    """Keeps every recording state it is sent (pub/sub holds listeners weakly)."""

    def __init__(self):
        self.states = []

    def on_state(self, state):
        self.states.append(state)

    @property
    def statuses(self):
        return [state.status for state in self.states]


class DictDecoder(AudioDecoder):
    """Decodes chunks by looking their bytes up in a table of buffers."""

    def __init__(self, buffers: Dict[bytes, SampleBuffer]):
        self.buffers = buffers
        self.calls = []

    def decode(self, chunk):
        self.calls.append(chunk.data)
        if chunk.data not in self.buffers:
            raise DecodeError(f"Unknown test input {chunk.data!r}")
        return self.buffers[chunk.data]


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_decoder():
    """Decoder class that maps chunk bytes to prepared buffers."""
    return DictDecoder


@pytest.fixture
def fake_device():
    return FakeCaptureDevice()


@pytest.fixture
def collector():
    return StateCollector()


@pytest.fixture
def constraints():
    return CaptureConstraints(sample_rate=8000, channels=1, chunk_size=800)


@pytest.fixture
def make_buffer():
    """Generate sample buffers for testing."""
    def generate(pattern="sine", duration_seconds=1.0, sample_rate=8000, channels=1,
                 amplitude=0.5, frequency=440.0):
        """Generate a buffer.

        Args:
            pattern: Type of audio pattern ('sine', 'constant', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
            channels: Channel count; every channel gets the same signal
            amplitude: Peak amplitude
            frequency: Sine frequency in Hz
        """
        frames = int(round(duration_seconds * sample_rate))
        t = np.arange(frames) / sample_rate

        if pattern == "sine":
            signal = amplitude * np.sin(2 * np.pi * frequency * t)
        elif pattern == "constant":
            signal = np.full(frames, amplitude)
        elif pattern == "noise":
            signal = np.random.default_rng(1234).uniform(-amplitude, amplitude, frames)
        elif pattern == "silence":
            signal = np.zeros(frames)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        return SampleBuffer(np.tile(signal.reshape(-1, 1), (1, channels)), sample_rate)

    return generate


@pytest.fixture
def make_request():
    """Build a mix request from (source_id, data, mime_type) triples."""
    def build(*items):
        return MixRequest(inputs=[
            MixInput(source_id=source_id, chunk=EncodedAudioChunk(data=data, mime_type=mime_type))
            for source_id, data, mime_type in items
        ])
    return build


@pytest.fixture
def pcm_chunk():
    """Raw 16-bit PCM bytes for a constant level."""
    def generate(level: int = 1000, frames: int = 800, channels: int = 1) -> bytes:
        return np.full(frames * channels, level, dtype="<i2").tobytes()
    return generate


@pytest.fixture
def config_file(temp_data_dir):
    """Write a configuration file pointing at the temporary data directory."""
    path = Path(temp_data_dir) / "overdub.yaml"
    path.write_text(
        "capture:\n"
        "  sample_rate: 8000\n"
        "  channels: 1\n"
        "  chunk_size: 800\n"
        "  tick_interval_ms: 50\n"
        "mixer:\n"
        "  decode_workers: 2\n"
        "  playback_lead_ms: 100\n"
        "storage:\n"
        "  data_directory: data\n"
        "  max_file_size_mb: 15\n"
        "logging:\n"
        "  level: DEBUG\n"
        "  file_path: data/logs/overdub.log\n"
        "  console_output: false\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 1600  # Silent audio
        mock_stream.is_active.return_value = True
        mock_stream.is_stopped.return_value = False
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {"index": 0}

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }
