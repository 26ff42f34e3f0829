"""Track storage for overdub."""

from .file_manager import TrackStore

__all__ = ["TrackStore"]
