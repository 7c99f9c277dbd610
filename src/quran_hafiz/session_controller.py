"""
Recitation session: listening lifecycle around the alignment engine.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from .alignment_engine import AlignmentCursor, AlignmentEngine, AlignmentStateError, WordView
from .config import AlignmentConfig
from .reference_index import Segment, build
from .text_normalization import tokenize
from .validation import (
    DEFAULT_PASS_PERCENTAGE,
    RecitationSummary,
    ValidationResult,
    summarize_statuses,
    validate_recitation,
)

# Errors speech recognizers raise routinely on mobile while the reciter pauses
RECOVERABLE_ERRORS = frozenset({"no-speech", "aborted", "network", "audio-capture"})
MAX_RESTART_ATTEMPTS = 6

Scheduler = Callable[[float, Callable[[], None]], Any]


def restart_delay(attempt: int) -> float:
    """Seconds to wait before restarting the listening source after ``attempt`` earlier restarts."""
    return min(1.5, 0.25 + attempt * 0.25)


def _timer_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


@dataclass
class SessionState:
    """Consistent copy of everything a client renders for a session."""
    is_listening: bool
    is_frozen: bool
    is_complete: bool
    cursor: AlignmentCursor
    final_text: str
    interim_text: str
    error: Optional[str]
    words: List[WordView]


class RecitationSession:
    """
    One reciter working through one passage.

    The transcript source pushes updates through ``on_transcript`` (whole
    finalized buffer) or ``append_final`` (newly finalized chunk). A local
    source object with ``start()``/``stop()`` methods is optional; without one
    the caller restarts listening itself after the delay ``on_source_ended``
    returns.
    """

    def __init__(
        self,
        segments: Sequence[Segment],
        config: Optional[AlignmentConfig] = None,
        source: Any = None,
        scheduler: Optional[Scheduler] = None,
        pass_percentage: float = DEFAULT_PASS_PERCENTAGE
    ):
        self.logger = logging.getLogger(__name__)
        self.config = config or AlignmentConfig()
        self.source = source
        self.pass_percentage = pass_percentage
        self._scheduler = scheduler or _timer_scheduler
        self._lock = threading.RLock()

        self.engine = AlignmentEngine(build(segments), self.config)
        self.wants_listening = False
        self.is_listening = False
        self.is_frozen = False
        self.error: Optional[str] = None
        self.final_text = ""
        self.interim_text = ""
        self._tokens: List[str] = []
        self._restart_attempts = 0
        self._pending_restart = None

    # --- lifecycle ---

    def start(self):
        """Begin listening. Every start begins a fresh attempt with an empty transcript."""
        with self._lock:
            if self.wants_listening:
                return
            self._reset_attempt()
            self.wants_listening = True
            self.error = None
            self._restart_attempts = 0
            self.logger.info("Listening started")
            self._start_source()

    def stop(self):
        """Stop listening and freeze the statuses for display."""
        with self._lock:
            self._cancel_pending_restart()
            self.wants_listening = False
            if self.source is not None and self.is_listening:
                self.source.stop()
            self.is_listening = False
            self.is_frozen = True
            self.logger.info(
                f"Listening stopped at word {self.engine.cursor.ref_index}/{len(self.engine.reference)}"
            )

    def reset(self):
        """Retry the passage: drop the transcript, the cursor and every status."""
        with self._lock:
            self._reset_attempt()
            self.error = None
            self.logger.info("Recitation attempt reset")

    def load_passage(self, segments: Sequence[Segment]):
        """Switch to another passage; implies a reset."""
        with self._lock:
            self.engine = AlignmentEngine(build(segments), self.config)
            self._reset_attempt()
            self.error = None
            self.logger.info(f"Loaded passage with {len(self.engine.reference)} words")

    # --- transcript source events ---

    def on_source_started(self):
        with self._lock:
            self.is_listening = True
            self._restart_attempts = 0
            self.error = None

    def on_source_ended(self) -> Optional[float]:
        """
        The recognizer stopped on its own.

        Returns:
            Restart delay in seconds while the reciter still wants to listen,
            otherwise None.
        """
        with self._lock:
            if not self.wants_listening:
                self.is_listening = False
                return None

            delay = restart_delay(self._restart_attempts)
            self._restart_attempts = min(self._restart_attempts + 1, MAX_RESTART_ATTEMPTS)
            # Still shown as listening while the restart is pending
            self.is_listening = True
            self.logger.info(f"Listening source ended unexpectedly, restarting in {delay:.2f}s")

            if self.source is not None:
                self._cancel_pending_restart()
                self._pending_restart = self._scheduler(delay, self._restart_source)
            return delay

    def on_source_error(self, code: str) -> bool:
        """
        The recognizer reported an error.

        Returns:
            True if the error is transient and listening continues.
        """
        with self._lock:
            if self.wants_listening and code in RECOVERABLE_ERRORS:
                self.logger.warning(f"Recoverable listening error: {code}")
                return True

            self.logger.error(f"Listening failed: {code}")
            self.error = f"Error: {code}"
            self._cancel_pending_restart()
            self.wants_listening = False
            self.is_listening = False
            self.is_frozen = True
            return False

    def on_transcript(self, final_text: str, interim_text: str = "") -> bool:
        """
        New transcript state from the recognizer.

        Args:
            final_text: Everything finalized so far in this attempt
            interim_text: Unfinalized tail; shown but never aligned

        Returns:
            True if the update was aligned, False if the session is not listening.
        """
        with self._lock:
            if not self.wants_listening:
                self.logger.warning("Ignoring transcript update while not listening")
                return False

            tokens = tokenize(final_text)
            # Words held back for confirmation may still be revised by the recognizer
            consumed = self.engine.cursor.consumed_hypothesis_count
            if len(tokens) < consumed or tokens[:consumed] != self._tokens[:consumed]:
                raise AlignmentStateError(
                    "Finalized transcript must keep its aligned words; "
                    f"{consumed} words were aligned, got {len(tokens)} that do not start with them"
                )

            self._tokens = tokens
            self.final_text = final_text
            self.interim_text = interim_text
            self.engine.advance(tokens)

            if self.engine.is_complete:
                self.logger.info("Passage recited to the end")
            return True

    def append_final(self, text: str, interim_text: str = "") -> bool:
        """Append a newly finalized chunk to the transcript."""
        with self._lock:
            combined = f"{self.final_text} {text}".strip()
            return self.on_transcript(combined, interim_text)

    # --- views ---

    @property
    def cursor(self) -> AlignmentCursor:
        return self.engine.cursor

    @property
    def is_complete(self) -> bool:
        return self.engine.is_complete

    @property
    def hypothesis_tokens(self) -> List[str]:
        return list(self._tokens)

    def snapshot(self) -> List[WordView]:
        with self._lock:
            return self.engine.snapshot()

    def state(self) -> SessionState:
        with self._lock:
            return SessionState(
                is_listening=self.is_listening,
                is_frozen=self.is_frozen,
                is_complete=self.engine.is_complete,
                cursor=self.engine.cursor,
                final_text=self.final_text,
                interim_text=self.interim_text,
                error=self.error,
                words=self.engine.snapshot(),
            )

    def summary(self) -> RecitationSummary:
        with self._lock:
            return summarize_statuses(self.engine.statuses, self.engine.is_complete, self.pass_percentage)

    def validate(self, ayah_number: int = 1) -> Optional[ValidationResult]:
        """
        Word-by-word check of the finished attempt against the passage text.

        Args:
            ayah_number: Number of the first ayah of the passage, reported back

        Returns:
            ValidationResult once listening has stopped with something recited,
            otherwise None.
        """
        with self._lock:
            if not self.is_frozen or not self.final_text:
                return None
            reference_text = " ".join(token.surface_form for token in self.engine.reference)
            return validate_recitation(self.final_text, reference_text, ayah_number, self.pass_percentage)

    # --- internals ---

    def _start_source(self):
        if self.source is None:
            self.is_listening = True
            return
        try:
            self.source.start()
        except RuntimeError as e:
            # Browsers and device APIs refuse a second start while already running
            self.logger.warning(f"Listening source did not start: {e}")

    def _restart_source(self):
        with self._lock:
            self._pending_restart = None
            if not self.wants_listening:
                return
            self._start_source()

    def _cancel_pending_restart(self):
        if self._pending_restart is not None:
            cancel = getattr(self._pending_restart, "cancel", None)
            if cancel is not None:
                cancel()
            self._pending_restart = None

    def _reset_attempt(self):
        self.engine.reset()
        self.final_text = ""
        self.interim_text = ""
        self._tokens = []
        self.is_frozen = False
