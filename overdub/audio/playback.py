"""Playback of a schedule produced by the mixing engine."""

import time
import logging
from threading import Thread, Event
from typing import Callable, List, Optional

import pyaudio

from ..models.mix import PlaybackPlan, ScheduledBuffer
from .wav import quantize_pcm16

logger = logging.getLogger(__name__)

FRAMES_PER_WRITE = 1024


class PyAudioPlayback:
    """Renders every scheduled buffer on its own output stream.

    All streams are opened (armed) before the shared start instant; each writer
    thread then sleeps until ``start_at`` on the plan's clock and starts writing.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.threads: List[Thread] = []
        self.stop_event = Event()

    def schedule(self, plan: PlaybackPlan) -> None:
        """Arm and start playback of a plan; returns without waiting for it to finish."""
        self.stop()
        self.stop_event.clear()
        self.pyaudio_instance = pyaudio.PyAudio()

        streams = []
        try:
            for entry in plan.entries:
                streams.append((entry, self._open_stream(entry)))
        except Exception as e:
            logger.error(f"Could not arm playback after {len(streams)} stream(s): {e}")
            for _, stream in streams:
                stream.close()
            self._terminate()
            raise

        self.threads = []
        for entry, stream in streams:
            thread = Thread(target=self._play, args=(entry, stream), daemon=True)
            thread.name = f"Playback-{entry.source_id}"
            self.threads.append(thread)
            thread.start()

        lag = plan.start_at - self.clock()
        if lag < 0:
            logger.warning(f"Playback armed {-lag * 1000:.0f}ms after the scheduled start")
        logger.info(f"Scheduled {len(streams)} stream(s) to start together")

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until every stream has finished playing."""
        for thread in self.threads:
            thread.join(timeout=timeout)
        self._terminate()

    def stop(self) -> None:
        self.stop_event.set()
        self.wait(timeout=2.0)
        self.threads = []

    def _open_stream(self, entry: ScheduledBuffer):
        return self.pyaudio_instance.open(
            format=pyaudio.paInt16,
            channels=entry.buffer.channel_count,
            rate=entry.buffer.sample_rate,
            output=True,
            frames_per_buffer=FRAMES_PER_WRITE,
        )

    def _play(self, entry: ScheduledBuffer, stream) -> None:
        """Internal method: wait for the shared start, then write the buffer."""
        try:
            delay = entry.start_at - self.clock()
            if delay > 0 and self.stop_event.wait(delay):
                return

            pcm = quantize_pcm16(entry.buffer.samples)
            for start in range(0, entry.buffer.frame_count, FRAMES_PER_WRITE):
                if self.stop_event.is_set():
                    break
                stream.write(pcm[start:start + FRAMES_PER_WRITE].astype("<i2").tobytes())
        except Exception as e:
            logger.error(f"Playback of {entry.source_id} failed: {e}")
        finally:
            stream.stop_stream()
            stream.close()

    def _terminate(self) -> None:
        if self.pyaudio_instance and not any(thread.is_alive() for thread in self.threads):
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
