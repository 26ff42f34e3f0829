"""Capture devices that deliver encoded chunks while a recording is active."""

import logging
from threading import Thread, Event, current_thread
from typing import Dict, Optional

import pyaudio

from ..errors import DeviceUnavailable, DeviceFailure, CaptureRuntimeError
from ..models.audio import CaptureConstraints, EncodedAudioChunk
from .device import CaptureDevice, DeviceHandle, ChunkCallback, ErrorCallback, next_handle_id

logger = logging.getLogger(__name__)


def classify_device_error(error: Exception) -> DeviceFailure:
    """Map a PortAudio error raised by PyAudio to a device failure reason."""
    code = getattr(error, "errno", None)
    if code is None and error.args and isinstance(error.args[0], int):
        code = error.args[0]

    failures = {
        pyaudio.paInvalidDevice: DeviceFailure.NO_DEVICE,
        pyaudio.paDeviceUnavailable: DeviceFailure.DEVICE_BUSY,
        pyaudio.paInvalidSampleRate: DeviceFailure.UNSUPPORTED_FORMAT,
        pyaudio.paInvalidChannelCount: DeviceFailure.UNSUPPORTED_FORMAT,
        pyaudio.paSampleFormatNotSupported: DeviceFailure.UNSUPPORTED_FORMAT,
        # Host APIs report refused microphone access as an unanticipated host error
        pyaudio.paUnanticipatedHostError: DeviceFailure.PERMISSION_DENIED,
    }
    if code in failures:
        return failures[code]
    if "no default input device" in str(error).lower():
        return DeviceFailure.NO_DEVICE
    return DeviceFailure.UNKNOWN


class _ActiveStream:
    """Reader thread state for one acquired handle."""

    def __init__(self, pyaudio_instance: pyaudio.PyAudio, stream, handle: DeviceHandle,
                 on_chunk: ChunkCallback, on_error: ErrorCallback):
        self.pyaudio_instance = pyaudio_instance
        self.stream = stream
        self.handle = handle
        self.on_chunk = on_chunk
        self.on_error = on_error
        self.stop_event = Event()
        self.active_event = Event()
        self.active_event.set()
        self.total_chunks = 0
        self.thread = Thread(target=self._read_continuously, daemon=True)
        self.thread.name = f"AudioCaptureThread-{handle.handle_id}"

    def _read_continuously(self) -> None:
        """Internal method: read chunks until released, honoring pause."""
        chunk_size = self.handle.constraints.chunk_size
        try:
            while not self.stop_event.is_set():
                if not self.active_event.is_set():
                    if self.stream.is_active():
                        self.stream.stop_stream()
                    self.active_event.wait(timeout=0.1)
                    continue
                if self.stream.is_stopped():
                    self.stream.start_stream()

                data = self.stream.read(chunk_size, exception_on_overflow=False)
                self.total_chunks += 1
                self.on_chunk(EncodedAudioChunk(data=data, mime_type=self.handle.mime_type))
        except Exception as e:
            logger.error(f"Capture stream failed after {self.total_chunks} chunks: {e}")
            self.on_error(CaptureRuntimeError(f"Recording error: {e}"))
        finally:
            try:
                self.stream.stop_stream()
                self.stream.close()
            finally:
                self.pyaudio_instance.terminate()
            logger.info(f"Capture stream closed. Total chunks: {self.total_chunks}")


class PyAudioCaptureDevice(CaptureDevice):
    """Microphone capture through PyAudio, delivering raw 16-bit PCM chunks."""

    def __init__(self, input_device_index: Optional[int] = None):
        """Initialize capture device.

        Args:
            input_device_index: PortAudio device index; None uses the default input
        """
        self.input_device_index = input_device_index
        self.streams: Dict[int, _ActiveStream] = {}

    def acquire(self, constraints: CaptureConstraints,
                on_chunk: ChunkCallback, on_error: ErrorCallback) -> DeviceHandle:
        pyaudio_instance = pyaudio.PyAudio()
        try:
            if self.input_device_index is None:
                pyaudio_instance.get_default_input_device_info()
            stream = pyaudio_instance.open(
                format=pyaudio.paInt16,
                channels=constraints.channels,
                rate=constraints.sample_rate,
                input=True,
                input_device_index=self.input_device_index,
                frames_per_buffer=constraints.chunk_size,
                stream_callback=None
            )
        except (OSError, ValueError) as e:
            pyaudio_instance.terminate()
            reason = classify_device_error(e)
            logger.error(f"Could not open capture device ({reason.value}): {e}")
            raise DeviceUnavailable(reason, str(e)) from e

        handle = DeviceHandle(handle_id=next_handle_id(), constraints=constraints,
                              mime_type=constraints.mime_type)
        active = _ActiveStream(pyaudio_instance, stream, handle, on_chunk, on_error)
        self.streams[handle.handle_id] = active
        active.thread.start()
        logger.info(f"Audio stream opened: {constraints.sample_rate}Hz, "
                    f"{constraints.channels} channel(s), {constraints.chunk_size} samples/chunk")
        return handle

    def pause(self, handle: DeviceHandle) -> None:
        active = self.streams.get(handle.handle_id)
        if active:
            active.active_event.clear()

    def resume(self, handle: DeviceHandle) -> None:
        active = self.streams.get(handle.handle_id)
        if active:
            active.active_event.set()

    def release(self, handle: DeviceHandle) -> None:
        active = self.streams.pop(handle.handle_id, None)
        if active is None:
            return

        active.stop_event.set()
        active.active_event.set()
        # Release may be triggered from the reader thread itself via on_error
        if active.thread.is_alive() and active.thread is not current_thread():
            active.thread.join(timeout=2.0)
            if active.thread.is_alive():
                logger.warning("Capture thread did not stop cleanly")
