"""Service layer for overdub."""

from .recorder import CaptureStateMachine
from .mixer import MixingEngine
from .session_manager import SessionManager

__all__ = [
    "CaptureStateMachine",
    "MixingEngine",
    "SessionManager",
]
