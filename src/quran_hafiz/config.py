"""
Configuration for the hifz recitation tracker.

Values come from the environment (optionally a .env file) with typed defaults.
"""

import os
import logging
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class AlignmentConfig:
    """Similarity cutoffs and search bounds used by the alignment engine.

    All thresholds are similarity scores in [0, 100]. They were tuned by ear
    on live recitations and are meant to be adjusted, not relied upon.
    """

    segment_start_threshold: float = 85.0
    within_segment_threshold: float = 70.0
    short_token_length: int = 2
    short_token_threshold_boost: float = 15.0
    confirmation_threshold: float = 50.0
    lookahead_window: int = 3
    lookahead_detection_threshold: float = 80.0
    next_segment_detection_threshold: float = 90.0
    long_jump_max_segments_ahead: int = 5
    long_jump_detection_threshold: float = 95.0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.type in (float, "float") and not 0.0 <= value <= 100.0:
                raise ValueError(f"{f.name} must be in [0, 100]")
        if self.short_token_length < 0:
            raise ValueError("short_token_length must be greater than or equal to 0")
        if self.lookahead_window < 0:
            raise ValueError("lookahead_window must be greater than or equal to 0")
        if self.long_jump_max_segments_ahead < 0:
            raise ValueError("long_jump_max_segments_ahead must be greater than or equal to 0")

    @classmethod
    def from_env(cls) -> "AlignmentConfig":
        """Build a config from HAFIZ_* environment variables."""
        defaults = cls()
        return cls(
            segment_start_threshold=_env_float("HAFIZ_SEGMENT_START_THRESHOLD", defaults.segment_start_threshold),
            within_segment_threshold=_env_float("HAFIZ_WITHIN_SEGMENT_THRESHOLD", defaults.within_segment_threshold),
            short_token_length=_env_int("HAFIZ_SHORT_TOKEN_LENGTH", defaults.short_token_length),
            short_token_threshold_boost=_env_float("HAFIZ_SHORT_TOKEN_BOOST", defaults.short_token_threshold_boost),
            confirmation_threshold=_env_float("HAFIZ_CONFIRMATION_THRESHOLD", defaults.confirmation_threshold),
            lookahead_window=_env_int("HAFIZ_LOOKAHEAD_WINDOW", defaults.lookahead_window),
            lookahead_detection_threshold=_env_float("HAFIZ_LOOKAHEAD_THRESHOLD", defaults.lookahead_detection_threshold),
            next_segment_detection_threshold=_env_float(
                "HAFIZ_NEXT_SEGMENT_THRESHOLD", defaults.next_segment_detection_threshold
            ),
            long_jump_max_segments_ahead=_env_int("HAFIZ_LONG_JUMP_MAX_SEGMENTS", defaults.long_jump_max_segments_ahead),
            long_jump_detection_threshold=_env_float("HAFIZ_LONG_JUMP_THRESHOLD", defaults.long_jump_detection_threshold),
        )


@dataclass(frozen=True)
class ServiceSettings:
    """Settings for the reference text provider and the HTTP service."""

    alquran_base_url: str = "https://api.alquran.cloud/v1/"
    alquran_edition: str = "quran-uthmani"
    request_timeout: float = 10.0
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    pass_percentage: float = 85.0
    session_idle_timeout: float = 1800.0
    max_sessions: int = 100

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        defaults = cls()
        base_url = os.getenv("ALQURAN_API_BASE_URL", defaults.alquran_base_url)
        # urljoin drops the last path component without it
        if not base_url.endswith("/"):
            base_url += "/"
        return cls(
            alquran_base_url=base_url,
            alquran_edition=os.getenv("ALQURAN_EDITION", defaults.alquran_edition),
            request_timeout=_env_float("ALQURAN_TIMEOUT", defaults.request_timeout),
            host=os.getenv("HAFIZ_HOST", defaults.host),
            port=_env_int("HAFIZ_PORT", defaults.port),
            log_level=os.getenv("HAFIZ_LOG_LEVEL", defaults.log_level).upper(),
            pass_percentage=_env_float("HAFIZ_PASS_PERCENTAGE", defaults.pass_percentage),
            session_idle_timeout=_env_float("HAFIZ_SESSION_IDLE_TIMEOUT", defaults.session_idle_timeout),
            max_sessions=_env_int("HAFIZ_MAX_SESSIONS", defaults.max_sessions),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging for entry points."""
    level_name = (level or ServiceSettings.from_env().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
