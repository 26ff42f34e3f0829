"""Session-related data models."""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .mix import DroppedInput


@dataclass(frozen=True)
class SessionHandle:
    """Identity of a recording session, passed explicitly to session-scoped calls."""
    session_id: str

    @classmethod
    def new(cls) -> "SessionHandle":
        return cls(str(uuid.uuid4()))

    @property
    def slug(self) -> str:
        """Session id reduced to characters safe for file and topic names."""
        return re.sub(r"\W", "_", self.session_id)


@dataclass
class TrackInfo:
    """Metadata record of one stored track or mixdown."""
    track_id: str
    session_id: str
    file_path: str
    mime_type: str
    size_bytes: int
    is_mixdown: bool
    created_at: datetime
    duration_ms: Optional[int] = None


@dataclass
class TakeResult:
    """Outcome of saving a take: the stored take and the refreshed mixdown."""
    track: TrackInfo
    mixdown: TrackInfo
    dropped: List[DroppedInput] = field(default_factory=list)
