"""Session manager: stores takes and keeps each session's mixdown current."""

import logging
from typing import List, Optional, Tuple

from ..audio.wav import WAV_MIME_TYPE
from ..config import OverdubConfig
from ..errors import InvalidRequest, NoDecodableInput, StorageError
from ..models.mix import MixInput, MixRequest, DroppedInput, MixdownResult, PlaybackPlan
from ..models.recording import RecordingState, RecordingStatus
from ..models.session import SessionHandle, TrackInfo, TakeResult
from ..storage.file_manager import TrackStore
from .mixer import MixingEngine

logger = logging.getLogger(__name__)


class SessionManager:
    """Connects finished recordings, the track store and the mixing engine."""

    def __init__(self, config: OverdubConfig,
                 store: Optional[TrackStore] = None,
                 engine: Optional[MixingEngine] = None):
        """Initialize session manager.

        Args:
            config: Application configuration
            store: Track storage (defaults to a TrackStore in the configured data dir)
            engine: Mixing engine (defaults to one built from config)
        """
        self.config = config
        self.engine = engine or MixingEngine(
            max_workers=config.get_decode_workers(),
            playback_lead_seconds=config.get_playback_lead_seconds(),
        )
        self.store = store or TrackStore(config.get_data_directory(),
                                         decoder=self.engine.decoder,
                                         max_file_size=config.get_max_file_size())
        logger.info(f"SessionManager initialized with data dir: {self.store.data_dir}")

    def create_session(self) -> SessionHandle:
        session = SessionHandle.new()
        logger.info(f"Created new session: {session.session_id}")
        return session

    def save_take(self, session: SessionHandle, state: RecordingState) -> TakeResult:
        """Store a finished recording and regenerate the session mixdown.

        Args:
            session: Session the take belongs to
            state: Stopped recorder state holding the finalized stream

        Returns:
            The stored take, the new mixdown, and any tracks left out of the mix
        """
        stream = state.finalized_stream
        if state.status is not RecordingStatus.STOPPED or stream is None or not stream.data:
            raise InvalidRequest("There is no finished recording to save")

        track = self.store.persist(stream.data, stream.mime_type, session)
        mixdown, result = self.remix(session)
        logger.info(f"Saved take {track.track_id} for session {session.session_id}")
        return TakeResult(track=track, mixdown=mixdown, dropped=result.dropped)

    def remix(self, session: SessionHandle) -> Tuple[TrackInfo, MixdownResult]:
        """Mix every take of a session and replace its mixdown."""
        request, unavailable = self._build_request(session)
        result = self.engine.render_mixdown(request)
        result.mix.dropped = unavailable + result.mix.dropped

        mixdown = self.store.persist(result.wav_bytes, WAV_MIME_TYPE, session, is_mixdown=True)
        if result.dropped:
            logger.warning(f"Mixdown for session {session.session_id} left out "
                           f"{len(result.dropped)} track(s): "
                           f"{', '.join(d.source_id for d in result.dropped)}")
        return mixdown, result

    def build_playback_plan(self, session: SessionHandle) -> PlaybackPlan:
        """Schedule every take of a session to play back together."""
        request, unavailable = self._build_request(session)
        plan = self.engine.plan_playback(request)
        plan.dropped = unavailable + plan.dropped
        return plan

    def list_tracks(self, session: SessionHandle, page: int = 0,
                    page_size: Optional[int] = 20) -> List[TrackInfo]:
        return self.store.list_tracks(session, page=page, page_size=page_size)

    def get_mixdown(self, session: SessionHandle) -> Optional[TrackInfo]:
        return self.store.get_mixdown(session)

    def delete_track(self, track: TrackInfo) -> Optional[TrackInfo]:
        """Delete a take and refresh the mixdown.

        Returns:
            The new mixdown, or None when the session has no takes left
        """
        session = SessionHandle(track.session_id)
        self.store.delete_track(track)
        if not self.store.list_tracks(session, page_size=1):
            self.store.delete_mixdown(session)
            return None
        mixdown, _ = self.remix(session)
        return mixdown

    def _build_request(self, session: SessionHandle) -> Tuple[MixRequest, List[DroppedInput]]:
        """Fetch every take; unreadable ones are reported like undecodable ones."""
        tracks = self.store.list_tracks(session, page_size=None)
        if not tracks:
            raise InvalidRequest(f"Session {session.session_id} has no tracks to mix")

        inputs = []
        unavailable = []
        for track in tracks:
            try:
                inputs.append(MixInput(source_id=track.track_id, chunk=self.store.fetch_encoded(track)))
            except StorageError as e:
                logger.warning(f"Dropping track {track.track_id}: {e.cause}")
                unavailable.append(DroppedInput(source_id=track.track_id, reason=e.cause))

        if not inputs:
            raise NoDecodableInput(unavailable)
        return MixRequest(inputs=inputs), unavailable
