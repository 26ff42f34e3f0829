"""Mixing engine: decode many inputs, superimpose them at the origin, encode the mix."""

import time
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import numpy as np

from ..audio.decoder import AudioDecoder, PcmDecoder
from ..audio.wav import encode_wav
from ..errors import DecodeError, InvalidRequest, NoDecodableInput
from ..models.audio import SampleBuffer
from ..models.mix import (
    MixInput,
    MixRequest,
    DecodeOutcome,
    DroppedInput,
    MixResult,
    MixdownResult,
    ScheduledBuffer,
    PlaybackPlan,
)

logger = logging.getLogger(__name__)

DEFAULT_PLAYBACK_LEAD_SECONDS = 0.1
MIX_CHANNELS = 2


def frames_at_rate(buffer: SampleBuffer, sample_rate: int) -> int:
    """Length of a buffer in frames once its timeline is expressed at another rate."""
    if buffer.sample_rate == sample_rate:
        return buffer.frame_count
    return int(round(buffer.frame_count * sample_rate / buffer.sample_rate))


def align_to_rate(buffer: SampleBuffer, sample_rate: int) -> np.ndarray:
    """Samples of a buffer placed on a timeline at ``sample_rate``.

    Equal rates pass through untouched; otherwise each channel is linearly
    interpolated so that durations in seconds are preserved.
    """
    if buffer.sample_rate == sample_rate:
        return buffer.samples

    target_frames = frames_at_rate(buffer, sample_rate)
    if target_frames == 0 or buffer.frame_count == 0:
        return np.zeros((target_frames, buffer.channel_count), dtype=np.float64)

    source_times = np.arange(buffer.frame_count) / buffer.sample_rate
    target_times = np.arange(target_frames) / sample_rate
    return np.column_stack([
        np.interp(target_times, source_times, buffer.channel(channel))
        for channel in range(buffer.channel_count)
    ])


def sum_buffers(buffers: List[SampleBuffer], sample_rate: int) -> SampleBuffer:
    """Sum stereo buffers into a silent buffer as long as the longest one.

    Every buffer starts at frame 0. Addition is unclamped.
    """
    total_frames = max(frames_at_rate(buffer, sample_rate) for buffer in buffers)
    mix = SampleBuffer.silent(total_frames, MIX_CHANNELS, sample_rate)
    for buffer in buffers:
        aligned = align_to_rate(buffer, sample_rate)
        mix.samples[:aligned.shape[0]] += aligned
    return mix


class MixingEngine:
    """Stateless request/response mixer.

    Inputs of one request are decoded concurrently; each decode is captured as
    an outcome so one bad input never aborts its siblings.
    """

    def __init__(self,
                 decoder: Optional[AudioDecoder] = None,
                 max_workers: int = 4,
                 playback_lead_seconds: float = DEFAULT_PLAYBACK_LEAD_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        """Initialize mixing engine.

        Args:
            decoder: Decode collaborator (defaults to PcmDecoder)
            max_workers: Maximum concurrent decodes per request
            playback_lead_seconds: Time reserved before a shared playback start
            clock: Playback clock in seconds
        """
        self.decoder = decoder or PcmDecoder()
        self.max_workers = max_workers
        self.playback_lead_seconds = playback_lead_seconds
        self.clock = clock
        logger.info(f"MixingEngine initialized: {max_workers} decode workers, "
                    f"{playback_lead_seconds * 1000:.0f}ms playback lead")

    def mix(self, request: MixRequest) -> MixResult:
        """Decode and superimpose every input into one stereo buffer.

        Raises:
            InvalidRequest: If the request has no inputs or repeats a source
            NoDecodableInput: If no input could be decoded
        """
        outcomes = self._decode_all(request)
        decoded, dropped = self._partition(outcomes)

        # The first successfully decoded input sets the output rate
        reference_rate = decoded[0][1].sample_rate
        mix = sum_buffers([buffer for _, buffer in decoded], reference_rate)
        sources = [source_id for source_id, _ in decoded]

        logger.info(f"Mixed {len(sources)} input(s) into {mix.duration_seconds:.2f}s "
                    f"at {reference_rate}Hz ({len(dropped)} dropped)")
        return MixResult(buffer=mix, sources=sources, dropped=dropped)

    def render_mixdown(self, request: MixRequest) -> MixdownResult:
        """Mix the request and serialize the result as WAV."""
        result = self.mix(request)
        wav_bytes = encode_wav(result.buffer)
        logger.info(f"Rendered mixdown: {len(wav_bytes)} bytes")
        return MixdownResult(wav_bytes=wav_bytes, mix=result)

    def plan_playback(self, request: MixRequest) -> PlaybackPlan:
        """Schedule every decodable input to start at one shared future instant.

        Raises:
            InvalidRequest: If the request has no inputs or repeats a source
            NoDecodableInput: If no input could be decoded
        """
        outcomes = self._decode_all(request)
        decoded, dropped = self._partition(outcomes)

        start_at = self.clock() + self.playback_lead_seconds
        entries = [
            ScheduledBuffer(source_id=source_id, buffer=buffer, start_at=start_at)
            for source_id, buffer in decoded
        ]
        duration = max(entry.buffer.duration_seconds for entry in entries)
        logger.info(f"Planned playback of {len(entries)} buffer(s) at t={start_at:.3f}, "
                    f"lasting {duration:.2f}s")
        return PlaybackPlan(start_at=start_at, entries=entries,
                            duration_seconds=duration, dropped=dropped)

    def _decode_all(self, request: MixRequest) -> List[DecodeOutcome]:
        """Fan out decodes and gather one outcome per input, in request order."""
        self._validate(request)
        workers = max(1, min(self.max_workers, len(request.inputs)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="MixDecode") as executor:
            return list(executor.map(self._decode_one, request.inputs))

    def _decode_one(self, mix_input: MixInput) -> DecodeOutcome:
        try:
            buffer = self.decoder.decode(mix_input.chunk)
            if buffer.channel_count > MIX_CHANNELS:
                raise DecodeError(f"{buffer.channel_count}-channel audio is not supported")
            return DecodeOutcome(source_id=mix_input.source_id, buffer=buffer.to_stereo())
        except DecodeError as e:
            logger.warning(f"Dropping input {mix_input.source_id}: {e.cause}")
            return DecodeOutcome(source_id=mix_input.source_id, error=e.cause)
        except Exception as e:
            logger.warning(f"Dropping input {mix_input.source_id}: unexpected decode failure: {e}")
            return DecodeOutcome(source_id=mix_input.source_id, error=str(e))

    def _partition(self, outcomes: List[DecodeOutcome]):
        decoded = [(outcome.source_id, outcome.buffer) for outcome in outcomes if outcome.ok]
        dropped = [DroppedInput(source_id=outcome.source_id, reason=outcome.error)
                   for outcome in outcomes if not outcome.ok]
        if not decoded:
            logger.error(f"No decodable input among {len(outcomes)}")
            raise NoDecodableInput(dropped)
        return decoded, dropped

    def _validate(self, request: MixRequest) -> None:
        if not request.inputs:
            raise InvalidRequest("No tracks to mix")
        source_ids = [mix_input.source_id for mix_input in request.inputs]
        if len(set(source_ids)) != len(source_ids):
            raise InvalidRequest("Each input must appear only once in a mix request")
