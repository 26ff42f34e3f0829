"""Capture state machine governing one recording session."""

import time
import logging
import threading
from typing import Callable, List, Optional

from ..audio.device import CaptureDevice, DeviceHandle
from ..audio.state_publisher import RecordingStatePublisher, StateListener, recording_topic
from ..errors import DeviceUnavailable, InvalidRequest, CaptureRuntimeError
from ..models.audio import CaptureConstraints, EncodedAudioChunk
from ..models.recording import RecordingState, RecordingStatus, INITIAL_STATE
from ..models.session import SessionHandle

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.1

_ACTIVE = (RecordingStatus.RECORDING, RecordingStatus.PAUSED)


class CaptureStateMachine:
    """Drives idle -> recording -> (paused <-> recording) -> stopped for one session.

    Every transition, and every tick while recording, publishes an immutable
    RecordingState on the session's pub/sub topic. Duration only advances while
    in the recording state. Calls on one machine must be serialized by the
    caller; device and tick threads are synchronized internally.
    """

    def __init__(self,
                 device: CaptureDevice,
                 session: SessionHandle,
                 constraints: Optional[CaptureConstraints] = None,
                 tick_interval: float = DEFAULT_TICK_INTERVAL,
                 clock: Callable[[], float] = time.monotonic,
                 publisher: Optional[RecordingStatePublisher] = None):
        """Initialize capture state machine.

        Args:
            device: Capture device to acquire on start
            session: Session this recording belongs to
            constraints: Format requested from the device
            tick_interval: Seconds between duration updates while recording
            clock: Monotonic clock in seconds
            publisher: State channel (defaults to the session's topic)
        """
        self.device = device
        self.session = session
        self.constraints = constraints or CaptureConstraints()
        self.tick_interval = tick_interval
        self.clock = clock
        self.publisher = publisher or RecordingStatePublisher(recording_topic(session))

        self.lock = threading.RLock()
        self._state = INITIAL_STATE
        self._handle: Optional[DeviceHandle] = None
        self._mime_type = self.constraints.mime_type
        self._chunks: List[EncodedAudioChunk] = []

        # Incremented whenever a device handle is detached so late callbacks are ignored
        self._generation = 0

        # Duration accounting
        self._accumulated_seconds = 0.0
        self._segment_start: Optional[float] = None

        self._tick_stop: Optional[threading.Event] = None
        self._tick_thread: Optional[threading.Thread] = None

        logger.info(f"CaptureStateMachine initialized for session {session.session_id}")

    @property
    def state(self) -> RecordingState:
        """Current snapshot, with duration computed up to now."""
        with self.lock:
            if self._state.status is RecordingStatus.RECORDING:
                return self._state.evolve(duration_ms=self._elapsed_ms())
            return self._state

    @property
    def status(self) -> RecordingStatus:
        return self._state.status

    def subscribe(self, listener: StateListener) -> None:
        """Subscribe to state snapshots; the current snapshot is delivered immediately."""
        with self.lock:
            if self.publisher.subscribe(listener):
                self.publisher.deliver(listener, self.state)

    def unsubscribe(self, listener: StateListener) -> None:
        with self.lock:
            self.publisher.unsubscribe(listener)

    def start(self) -> RecordingState:
        """Acquire the device and begin a fresh recording.

        Raises:
            InvalidRequest: If a recording is already active
            DeviceUnavailable: If the device cannot be acquired
        """
        with self.lock:
            if self._state.status in _ACTIVE:
                raise InvalidRequest(f"Cannot start while {self._state.status.value}")

            self._generation += 1
            generation = self._generation
            self._chunks = []
            self._accumulated_seconds = 0.0
            self._segment_start = None

            try:
                handle = self.device.acquire(
                    self.constraints,
                    lambda chunk: self._on_chunk(generation, chunk),
                    lambda error: self._on_device_error(generation, error),
                )
            except DeviceUnavailable as e:
                logger.error(f"Could not start recording: {e.cause}")
                if self._state != INITIAL_STATE:
                    self._set_state(INITIAL_STATE)
                raise

            self._handle = handle
            self._mime_type = handle.mime_type
            self._segment_start = self.clock()
            self._set_state(RecordingState(status=RecordingStatus.RECORDING))
            self._start_ticker()
            logger.info(f"Recording started for session {self.session.session_id}")
            return self._state

    def pause(self) -> RecordingState:
        """Freeze the duration and suspend capture, keeping accumulated chunks."""
        with self.lock:
            if self._state.status is RecordingStatus.PAUSED:
                return self._state
            if self._state.status is not RecordingStatus.RECORDING:
                raise InvalidRequest(f"Cannot pause while {self._state.status.value}")

            self._freeze_duration()
            self.device.pause(self._handle)
            ticker = self._stop_ticker()
            self._set_state(self._state.evolve(status=RecordingStatus.PAUSED,
                                               duration_ms=self._elapsed_ms()))
            logger.info(f"Recording paused at {self._state.duration_ms}ms")

        self._join_ticker(ticker)
        return self._state

    def resume(self) -> RecordingState:
        """Continue timing from the frozen duration and resume capture."""
        with self.lock:
            if self._state.status is not RecordingStatus.PAUSED:
                raise InvalidRequest(f"Cannot resume while {self._state.status.value}")

            self._segment_start = self.clock()
            self.device.resume(self._handle)
            self._set_state(self._state.evolve(status=RecordingStatus.RECORDING))
            self._start_ticker()
            logger.info(f"Recording resumed at {self._state.duration_ms}ms")
            return self._state

    def stop(self) -> RecordingState:
        """Finalize the accumulated chunks and release the device.

        Stopping an idle or already stopped machine is a no-op.
        """
        with self.lock:
            if self._state.status not in _ACTIVE:
                return self._state
            handle, ticker = self._finalize()

        self._release(handle)
        self._join_ticker(ticker)
        return self._state

    def reset(self) -> RecordingState:
        """Discard everything, release any held device and return to idle."""
        with self.lock:
            handle = self._detach_handle()
            ticker = self._stop_ticker()
            self._chunks = []
            self._accumulated_seconds = 0.0
            self._segment_start = None
            self._set_state(INITIAL_STATE)
            logger.info(f"Recorder reset for session {self.session.session_id}")

        self._release(handle)
        self._join_ticker(ticker)
        return self._state

    def _on_chunk(self, generation: int, chunk: EncodedAudioChunk) -> None:
        with self.lock:
            if generation != self._generation or self._state.status not in _ACTIVE:
                return
            if chunk.data:
                self._chunks.append(chunk)

    def _on_device_error(self, generation: int, error: CaptureRuntimeError) -> None:
        """Implicitly stop with whatever was captured and tell observers why."""
        with self.lock:
            if generation != self._generation or self._state.status not in _ACTIVE:
                return
            logger.error(f"Capture device failed mid-session: {error.cause}")
            handle, ticker = self._finalize(error=error.cause)

        self._release(handle)
        self._join_ticker(ticker)

    def _finalize(self, error: Optional[str] = None):
        """Move to stopped. Caller holds the lock and releases the returned handle."""
        if self._state.status is RecordingStatus.RECORDING:
            self._freeze_duration()
        stream = EncodedAudioChunk.concatenate(self._chunks, self._mime_type)
        chunk_count = len(self._chunks)
        self._chunks = []

        handle = self._detach_handle()
        ticker = self._stop_ticker()
        self._set_state(RecordingState(status=RecordingStatus.STOPPED,
                                       duration_ms=self._elapsed_ms(),
                                       finalized_stream=stream,
                                       error=error))
        logger.info(f"Recording stopped: {self._state.duration_ms}ms, "
                    f"{chunk_count} chunks, {stream.size_bytes} bytes")
        return handle, ticker

    def _detach_handle(self) -> Optional[DeviceHandle]:
        handle = self._handle
        self._handle = None
        self._generation += 1
        return handle

    def _release(self, handle: Optional[DeviceHandle]) -> None:
        # Called without the lock so device threads blocked on it can finish
        if handle is not None:
            self.device.release(handle)

    def _freeze_duration(self) -> None:
        if self._segment_start is not None:
            self._accumulated_seconds += max(0.0, self.clock() - self._segment_start)
            self._segment_start = None

    def _elapsed_ms(self) -> int:
        elapsed = self._accumulated_seconds
        if self._segment_start is not None:
            elapsed += max(0.0, self.clock() - self._segment_start)
        return int(elapsed * 1000)

    def _set_state(self, state: RecordingState) -> None:
        self._state = state
        self.publisher.publish(state)

    def _start_ticker(self) -> None:
        stop_event = threading.Event()
        self._tick_stop = stop_event
        self._tick_thread = threading.Thread(target=self._tick_loop, args=(stop_event,), daemon=True)
        self._tick_thread.name = f"RecordingTicker-{self.session.slug}"
        self._tick_thread.start()

    def _stop_ticker(self) -> Optional[threading.Thread]:
        if self._tick_stop is not None:
            self._tick_stop.set()
        ticker = self._tick_thread
        self._tick_stop = None
        self._tick_thread = None
        return ticker

    def _join_ticker(self, ticker: Optional[threading.Thread]) -> None:
        if ticker is not None and ticker is not threading.current_thread():
            ticker.join(timeout=1.0)

    def _tick_loop(self, stop_event: threading.Event) -> None:
        """Internal method: publish the running duration every tick."""
        while not stop_event.wait(self.tick_interval):
            with self.lock:
                if stop_event.is_set() or self._state.status is not RecordingStatus.RECORDING:
                    break
                self._state = self._state.evolve(duration_ms=self._elapsed_ms())
                self.publisher.publish(self._state)
