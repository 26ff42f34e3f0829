"""Audio encoding, decoding and the pub/sub recording state channel."""

from .wav import encode_wav, quantize_pcm16, pcm16_to_float
from .decoder import AudioDecoder, PcmDecoder
from .device import CaptureDevice, DeviceHandle
from .state_publisher import RecordingStatePublisher

__all__ = [
    'encode_wav',
    'quantize_pcm16',
    'pcm16_to_float',
    'AudioDecoder',
    'PcmDecoder',
    'CaptureDevice',
    'DeviceHandle',
    'RecordingStatePublisher',
]
