"""Capture device interface: exclusive handles and push-based chunk delivery."""

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from ..errors import CaptureRuntimeError
from ..models.audio import CaptureConstraints, EncodedAudioChunk

ChunkCallback = Callable[[EncodedAudioChunk], None]
ErrorCallback = Callable[[CaptureRuntimeError], None]

_handle_ids = itertools.count(1)


def next_handle_id() -> int:
    return next(_handle_ids)


@dataclass(frozen=True)
class DeviceHandle:
    """Exclusive claim on a capture device for one session."""
    handle_id: int
    constraints: CaptureConstraints
    mime_type: str


class CaptureDevice(ABC):
    """Abstract base class for capture devices.

    While a handle is held and not paused, the device pushes chunks to the
    ``on_chunk`` callback given at acquisition. Failures after acquisition are
    reported through ``on_error``, never raised to the callback's thread.
    """

    @abstractmethod
    def acquire(self, constraints: CaptureConstraints,
                on_chunk: ChunkCallback, on_error: ErrorCallback) -> DeviceHandle:
        """Open the device and begin delivering chunks.

        Raises:
            DeviceUnavailable: If the device cannot be opened
        """
        pass

    @abstractmethod
    def pause(self, handle: DeviceHandle) -> None:
        """Suspend chunk delivery without releasing the device."""
        pass

    @abstractmethod
    def resume(self, handle: DeviceHandle) -> None:
        """Continue chunk delivery after pause."""
        pass

    @abstractmethod
    def release(self, handle: DeviceHandle) -> None:
        """Stop delivery and free the device. Safe to call more than once."""
        pass


