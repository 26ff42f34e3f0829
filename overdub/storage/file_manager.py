"""Local track storage: encoded takes and session mixdowns with a metadata index."""

import json
import logging
import threading
import time
import uuid
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, List
from dataclasses import asdict

from ..audio.decoder import AudioDecoder, PcmDecoder, parse_mime_type
from ..audio.wav import WAV_MIME_TYPE
from ..errors import DecodeError, StorageError
from ..models.audio import EncodedAudioChunk
from ..models.session import SessionHandle, TrackInfo

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 15 * 1024 * 1024  # 15MB
MIXDOWN_FILENAME = "mixdown.wav"
INDEX_FILENAME = "tracks.json"

# Accepted MIME families and the file extension each is stored under
MIME_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/pcm": "pcm",
}


class TrackStore:
    """Stores encoded tracks per session and keeps one mixdown per session."""

    def __init__(self, data_dir: str = "./data",
                 decoder: Optional[AudioDecoder] = None,
                 max_file_size: int = MAX_FILE_SIZE):
        """Initialize track store with data directory.

        Args:
            data_dir: Base directory for storing all data
            decoder: Used to estimate track durations
            max_file_size: Largest accepted take in bytes
        """
        self.data_dir = Path(data_dir)
        self.sessions_dir = self.data_dir / "sessions"
        self.decoder = decoder or PcmDecoder()
        self.max_file_size = max_file_size
        self.lock = threading.RLock()

        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"TrackStore initialized with data_dir: {self.data_dir}")

    def persist(self, data: bytes, mime_type: str, session: SessionHandle,
                is_mixdown: bool = False) -> TrackInfo:
        """Save encoded audio and record its metadata.

        A mixdown replaces the session's previous mixdown.

        Args:
            data: Encoded audio bytes
            mime_type: Format tag of the bytes
            session: Owning session
            is_mixdown: Whether this is the session mixdown rather than a take

        Returns:
            Metadata of the stored track

        Raises:
            StorageError: If the take is too large, of an unsupported type, or cannot be written
        """
        track_id = uuid.uuid4().hex
        if is_mixdown:
            mime_type = WAV_MIME_TYPE
            filename = f"{session.slug}_{MIXDOWN_FILENAME}"
        else:
            self._validate_take(data, mime_type)
            extension = self.extension_for(mime_type)
            filename = f"track_{session.slug}_{int(time.time() * 1000)}_{track_id[:6]}.{extension}"

        with self.lock:
            if is_mixdown:
                self.delete_mixdown(session)

            session_path = self.get_session_path(session)
            session_path.mkdir(parents=True, exist_ok=True)
            file_path = session_path / filename
            try:
                with open(file_path, "wb") as f:
                    f.write(data)
            except OSError as e:
                logger.error(f"Error saving audio file: {e}")
                raise StorageError(f"Could not save {filename}: {e}") from e

            track = TrackInfo(
                track_id=track_id,
                session_id=session.session_id,
                file_path=filename,
                mime_type=mime_type,
                size_bytes=len(data),
                is_mixdown=is_mixdown,
                created_at=datetime.now(),
                duration_ms=self._estimate_duration_ms(data, mime_type),
            )
            index = self._load_index(session)
            index.append(track)
            self._save_index(session, index)

        logger.info(f"{'Mixdown' if is_mixdown else 'Track'} saved: {file_path} ({len(data)} bytes)")
        return track

    def fetch_encoded(self, track: TrackInfo) -> EncodedAudioChunk:
        """Read a stored track back as encoded bytes."""
        file_path = self.get_session_path(SessionHandle(track.session_id)) / track.file_path
        try:
            with open(file_path, "rb") as f:
                return EncodedAudioChunk(data=f.read(), mime_type=track.mime_type)
        except OSError as e:
            raise StorageError(f"Error downloading {track.file_path}: {e}") from e

    def list_tracks(self, session: SessionHandle, page: int = 0, page_size: Optional[int] = 20,
                    include_mixdown: bool = False) -> List[TrackInfo]:
        """List a session's tracks, newest first.

        A page_size of None returns every track.
        """
        with self.lock:
            tracks = [track for track in self._load_index(session)
                      if include_mixdown or not track.is_mixdown]
        # Later index entries win ties between equal timestamps
        tracks.reverse()
        tracks.sort(key=lambda track: track.created_at, reverse=True)
        if page_size is None:
            return tracks
        return tracks[page * page_size:(page + 1) * page_size]

    def get_mixdown(self, session: SessionHandle) -> Optional[TrackInfo]:
        with self.lock:
            for track in self._load_index(session):
                if track.is_mixdown:
                    return track
        return None

    def delete_track(self, track: TrackInfo) -> None:
        """Remove a track's file and its metadata record."""
        session = SessionHandle(track.session_id)
        with self.lock:
            file_path = self.get_session_path(session) / track.file_path
            try:
                file_path.unlink()
            except FileNotFoundError:
                logger.warning(f"Track file already missing: {file_path}")

            index = [entry for entry in self._load_index(session) if entry.track_id != track.track_id]
            self._save_index(session, index)
        logger.info(f"Deleted track {track.track_id} ({track.file_path})")

    def delete_mixdown(self, session: SessionHandle) -> None:
        mixdown = self.get_mixdown(session)
        if mixdown:
            self.delete_track(mixdown)

    def get_session_path(self, session: SessionHandle) -> Path:
        return self.sessions_dir / session.slug

    def list_sessions(self) -> List[str]:
        """List the ids of sessions that have stored tracks."""
        sessions = []
        for path in self.sessions_dir.iterdir():
            index_file = path / INDEX_FILENAME
            if path.is_dir() and index_file.exists():
                with open(index_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                sessions.append(data["session_id"])
        sessions.sort()
        return sessions

    def get_storage_stats(self) -> Dict[str, Any]:
        """Get storage usage statistics."""
        total_size = 0
        session_count = 0
        audio_files = 0

        for session_path in self.sessions_dir.iterdir():
            if session_path.is_dir():
                session_count += 1
                for file_path in session_path.iterdir():
                    if file_path.is_file():
                        total_size += file_path.stat().st_size
                        if file_path.name != INDEX_FILENAME:
                            audio_files += 1

        return {
            "total_size_bytes": total_size,
            "total_size_mb": round(total_size / (1024 * 1024), 2),
            "session_count": session_count,
            "audio_files": audio_files,
            "data_directory": str(self.data_dir)
        }

    @staticmethod
    def extension_for(mime_type: str) -> str:
        base_type, _ = parse_mime_type(mime_type)
        for mime, extension in MIME_EXTENSIONS.items():
            if base_type.startswith(mime):
                return extension
        return "webm"

    def _validate_take(self, data: bytes, mime_type: str) -> None:
        if len(data) > self.max_file_size:
            raise StorageError(
                f"File exceeds the maximum size of {self.max_file_size // (1024 * 1024)}MB")
        base_type, _ = parse_mime_type(mime_type)
        if not any(base_type.startswith(mime) for mime in MIME_EXTENSIONS):
            raise StorageError(f"Unsupported file type: {mime_type}")

    def _estimate_duration_ms(self, data: bytes, mime_type: str) -> int:
        try:
            buffer = self.decoder.decode(EncodedAudioChunk(data=data, mime_type=mime_type))
        except DecodeError as e:
            logger.debug(f"Could not estimate duration of {mime_type} audio: {e.cause}")
            return 0
        return int(round(buffer.duration_seconds * 1000))

    def _index_path(self, session: SessionHandle) -> Path:
        return self.get_session_path(session) / INDEX_FILENAME

    def _load_index(self, session: SessionHandle) -> List[TrackInfo]:
        index_file = self._index_path(session)
        if not index_file.exists():
            return []

        try:
            with open(index_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Error reading track index for session {session.session_id}: {e}") from e

        tracks = []
        for entry in data["tracks"]:
            entry["created_at"] = datetime.fromisoformat(entry["created_at"])
            tracks.append(TrackInfo(**entry))
        return tracks

    def _save_index(self, session: SessionHandle, tracks: List[TrackInfo]) -> None:
        entries = []
        for track in tracks:
            entry = asdict(track)
            entry["created_at"] = track.created_at.isoformat()
            entries.append(entry)

        index_file = self._index_path(session)
        index_file.parent.mkdir(parents=True, exist_ok=True)
        with open(index_file, "w", encoding="utf-8") as f:
            json.dump({"session_id": session.session_id, "tracks": entries}, f, indent=2)
