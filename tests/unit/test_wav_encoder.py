"""Unit tests for WAV encoding."""

import io
import struct

import pytest
import numpy as np
from scipy.io import wavfile

from overdub.audio.decoder import PcmDecoder
from overdub.audio.wav import encode_wav, quantize_pcm16, pcm16_to_float, WAV_MIME_TYPE
from overdub.models.audio import SampleBuffer, EncodedAudioChunk


def parse_header(data: bytes) -> dict:
    fields = struct.unpack("<4sI4s4sIHHIIHH4sI", data[:44])
    names = ["chunk_id", "chunk_size", "format", "subchunk1_id", "subchunk1_size",
             "audio_format", "num_channels", "sample_rate", "byte_rate", "block_align",
             "bits_per_sample", "subchunk2_id", "subchunk2_size"]
    return dict(zip(names, fields))


@pytest.mark.unit
class TestWavEncoder:
    """Test cases for encode_wav and PCM quantization."""

    def test_header_layout(self):
        """Every header field sits at its fixed offset with the expected value."""
        buffer = SampleBuffer(np.zeros((10, 2)), 44100)

        data = encode_wav(buffer)
        header = parse_header(data)

        assert len(data) == 44 + 10 * 2 * 2
        assert header["chunk_id"] == b"RIFF"
        assert header["chunk_size"] == 36 + 40
        assert header["format"] == b"WAVE"
        assert header["subchunk1_id"] == b"fmt "
        assert header["subchunk1_size"] == 16
        assert header["audio_format"] == 1
        assert header["num_channels"] == 2
        assert header["sample_rate"] == 44100
        assert header["byte_rate"] == 44100 * 2 * 2
        assert header["block_align"] == 4
        assert header["bits_per_sample"] == 16
        assert header["subchunk2_id"] == b"data"
        assert header["subchunk2_size"] == 40

    def test_exact_bytes_for_small_buffer(self):
        """A two-frame stereo buffer serializes to a known byte string."""
        buffer = SampleBuffer(np.array([[1.0, -1.0], [0.0, 0.5]]), 8000)

        data = encode_wav(buffer)

        expected_header = (
            b"RIFF" + struct.pack("<I", 44) + b"WAVE"
            + b"fmt " + struct.pack("<IHHIIHH", 16, 1, 2, 8000, 32000, 4, 16)
            + b"data" + struct.pack("<I", 8)
        )
        expected_data = struct.pack("<4h", 32767, -32768, 0, 16384)
        assert data == expected_header + expected_data

    def test_quantization_is_asymmetric_and_clamped(self):
        samples = np.array([1.0, -1.0, 0.5, -0.5, 0.0, 2.0, -2.0, 1e-6])

        quantized = quantize_pcm16(samples)

        assert quantized.dtype == np.int16
        assert quantized.tolist() == [32767, -32768, 16384, -16384, 0, 32767, -32768, 0]

    def test_quantization_rounds_half_away_from_zero(self):
        # Negative values scale by a power of two, so these land exactly on half steps
        samples = np.array([0.5, -1.5 / 32768, -2.5 / 32768, 0.4 / 32767, -0.4 / 32768])

        assert quantize_pcm16(samples).tolist() == [16384, -2, -3, 0, 0]

    def test_nan_is_encoded_as_silence(self):
        assert quantize_pcm16(np.array([np.nan])).tolist() == [0]

    def test_interleaving_is_frame_major(self):
        left = [0.1, 0.2, 0.3]
        right = [-0.1, -0.2, -0.3]
        buffer = SampleBuffer(np.column_stack([left, right]), 8000)

        data = encode_wav(buffer)
        ints = np.frombuffer(data[44:], dtype="<i2")

        expected = quantize_pcm16(np.array([0.1, -0.1, 0.2, -0.2, 0.3, -0.3]))
        assert ints.tolist() == expected.tolist()

    def test_mono_buffer_declares_one_channel(self, make_buffer):
        buffer = make_buffer(duration_seconds=0.1, channels=1)

        header = parse_header(encode_wav(buffer))

        assert header["num_channels"] == 1
        assert header["block_align"] == 2
        assert header["subchunk2_size"] == buffer.frame_count * 2

    def test_empty_buffer(self):
        data = encode_wav(SampleBuffer.silent(0, 2, 44100))

        assert len(data) == 44
        assert parse_header(data)["subchunk2_size"] == 0
        assert parse_header(data)["chunk_size"] == 36

    def test_encoding_is_deterministic(self, make_buffer):
        buffer = make_buffer("noise", duration_seconds=0.2, channels=2)

        assert encode_wav(buffer) == encode_wav(buffer)

    @pytest.mark.parametrize("channels,sample_rate", [(1, 8000), (2, 44100), (2, 22050)])
    def test_round_trip_within_one_quantization_step(self, make_buffer, channels, sample_rate):
        """Decoding an encoded buffer reproduces every sample to 16-bit precision."""
        buffer = make_buffer("noise", duration_seconds=0.25, sample_rate=sample_rate,
                             channels=channels, amplitude=1.0)

        decoded = PcmDecoder().decode(EncodedAudioChunk(encode_wav(buffer), WAV_MIME_TYPE))

        assert decoded.channel_count == channels
        assert decoded.sample_rate == sample_rate
        assert decoded.frame_count == buffer.frame_count
        assert np.max(np.abs(decoded.samples - buffer.samples)) <= 1 / 32767

    def test_output_is_readable_by_scipy(self, make_buffer):
        buffer = make_buffer("sine", duration_seconds=0.1, channels=2)

        rate, samples = wavfile.read(io.BytesIO(encode_wav(buffer)))

        assert rate == 8000
        assert samples.dtype == np.int16
        assert samples.shape == (buffer.frame_count, 2)

    def test_pcm16_to_float_inverts_quantization(self):
        ints = np.array([32767, -32768, 0, 16384, -16384], dtype=np.int16)

        floats = pcm16_to_float(ints)

        assert floats.tolist() == [1.0, -1.0, 0.0, 16384 / 32767, -0.5]
        assert quantize_pcm16(floats).tolist() == ints.tolist()
