"""
Live word-by-word tracking of a memorized Quran recitation.
"""

from .alignment_engine import (
    AlignmentCursor,
    AlignmentEngine,
    AlignmentStateError,
    Status,
    WordStatus,
    WordView,
    advance,
)
from .config import AlignmentConfig, ServiceSettings
from .reference_index import ReferenceIndex, Token, build
from .session_controller import RecitationSession, SessionState
from .similarity import similarity
from .text_normalization import normalize, tokenize

__version__ = "1.0.0"

__all__ = [
    "AlignmentConfig",
    "AlignmentCursor",
    "AlignmentEngine",
    "AlignmentStateError",
    "RecitationSession",
    "ReferenceIndex",
    "ServiceSettings",
    "SessionState",
    "Status",
    "Token",
    "WordStatus",
    "WordView",
    "advance",
    "build",
    "normalize",
    "similarity",
    "tokenize",
]
