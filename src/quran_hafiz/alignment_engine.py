"""
Incremental fuzzy alignment of a growing transcript against the reference passage.

Each call folds only the transcript words that arrived since the previous call
into the per-word statuses. Statuses behind the cursor are never touched again,
so what the reciter sees only ever extends.
"""

import bisect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple

from .config import AlignmentConfig
from .reference_index import ReferenceIndex
from .similarity import similarity

PASSAGE_SKIPPED = "passage skipped"
SEGMENT_SKIPPED = "segment skipped"

# Returned instead of a decision when the next transcript word is needed first
_DEFER = object()


class AlignmentStateError(RuntimeError):
    """Raised when the engine is driven in a way that breaks its bookkeeping."""


class Status(str, Enum):
    PENDING = "pending"
    CORRECT = "correct"
    SKIPPED = "skipped"


@dataclass
class WordStatus:
    """Alignment state of one reference word."""
    status: Status = Status.PENDING
    reason: Optional[str] = None


@dataclass(frozen=True)
class AlignmentCursor:
    """Next expected reference position and how many transcript words are already folded in."""
    ref_index: int = 0
    consumed_hypothesis_count: int = 0


class WordView(NamedTuple):
    """What the presentation layer renders for one reference word."""
    surface: str
    status: Status
    is_segment_boundary: bool
    segment_index: int


def new_statuses(length: int) -> List[WordStatus]:
    return [WordStatus() for _ in range(length)]


def _threshold(base: float, reference_word: str, config: AlignmentConfig) -> float:
    # One or two letter words match noise far too easily
    if len(reference_word) <= config.short_token_length:
        return min(100.0, base + config.short_token_threshold_boost)
    return base


def _confirm(reference: ReferenceIndex, position: int, following: Optional[str], config: AlignmentConfig):
    """
    Check that the transcript word after the candidate fits the passage after ``position``.

    Returns True, False, or _DEFER when the following word has not arrived yet.
    """
    after = position + 1
    if after >= len(reference):
        return True
    if following is None:
        return _DEFER

    if similarity(following, reference[after].normalized_form) >= config.confirmation_threshold:
        return True

    # The reciter may have gone on past the candidate while dropping its successor
    end = min(after + config.lookahead_window, reference.segment_end(after))
    for p in range(after + 1, end + 1):
        word = reference[p].normalized_form
        if similarity(following, word) >= _threshold(config.lookahead_detection_threshold, word, config):
            return True
    return False


def _lookahead_candidates(
    reference: ReferenceIndex, r: int, config: AlignmentConfig
) -> Iterator[Tuple[int, float]]:
    if config.lookahead_window <= 0:
        return
    end = reference.segment_end(r)
    for k in range(r + 1, min(r + config.lookahead_window, end) + 1):
        yield k, config.lookahead_detection_threshold
    if r + config.lookahead_window >= end and end + 1 < len(reference):
        yield end + 1, config.next_segment_detection_threshold


def _long_jump_candidates(reference: ReferenceIndex, r: int, config: AlignmentConfig) -> Sequence[int]:
    starts = reference.segment_starts
    i = bisect.bisect_left(starts, r)
    return starts[i + 1:i + 1 + config.long_jump_max_segments_ahead]


def _decide(
    reference: ReferenceIndex,
    r: int,
    word: str,
    following: Optional[str],
    config: AlignmentConfig,
):
    """
    Decide what one transcript word means at reference position ``r``.

    Returns (matched_position, skip_reason), None for noise, or _DEFER.
    """
    at_start = reference.is_segment_start(r)
    expected = reference[r].normalized_form

    # 1. Match at the cursor
    base = config.segment_start_threshold if at_start else config.within_segment_threshold
    score = similarity(word, expected)
    if score >= _threshold(base, expected, config):
        unambiguous = score == 100.0 and len(expected) > config.short_token_length
        if not at_start or unambiguous:
            return r, None
        verdict = _confirm(reference, r, following, config)
        if verdict is _DEFER:
            return _DEFER
        if verdict:
            return r, None

    # 2. A few words ahead, possibly the opening word of the next ayah
    for k, base in _lookahead_candidates(reference, r, config):
        candidate = reference[k].normalized_form
        if similarity(word, candidate) >= _threshold(base, candidate, config):
            verdict = _confirm(reference, k, following, config)
            if verdict is _DEFER:
                return _DEFER
            if verdict:
                return k, PASSAGE_SKIPPED

    # 3. Whole ayahs skipped; only re-synchronize on ayah openings
    if at_start:
        for k in _long_jump_candidates(reference, r, config):
            candidate = reference[k].normalized_form
            if similarity(word, candidate) >= _threshold(config.long_jump_detection_threshold, candidate, config):
                verdict = _confirm(reference, k, following, config)
                if verdict is _DEFER:
                    return _DEFER
                if verdict:
                    return k, SEGMENT_SKIPPED

    # 4. Recognizer noise
    return None


def advance(
    reference: ReferenceIndex,
    cursor: AlignmentCursor,
    statuses: List[WordStatus],
    hypothesis_tokens: Sequence[str],
    config: Optional[AlignmentConfig] = None,
) -> AlignmentCursor:
    """
    Fold newly recognized words into the statuses.

    Args:
        reference: The loaded passage
        cursor: Cursor returned by the previous call (or a fresh one)
        statuses: Per-word statuses, mutated in place
        hypothesis_tokens: The full normalized transcript so far; it may only grow
        config: Thresholds and search bounds

    Returns:
        The new cursor. Words waiting for confirmation are left unconsumed.
    """
    config = config or AlignmentConfig()

    if len(statuses) != len(reference):
        raise AlignmentStateError(
            f"Status array has {len(statuses)} entries for a passage of {len(reference)} words"
        )
    total = len(hypothesis_tokens)
    if total < cursor.consumed_hypothesis_count:
        raise AlignmentStateError(
            f"Transcript shrank to {total} words after {cursor.consumed_hypothesis_count} were consumed"
        )

    r = cursor.ref_index
    consumed = cursor.consumed_hypothesis_count
    while consumed < total:
        if r >= len(reference):
            # Passage finished, anything else is noise
            consumed = total
            break

        following = hypothesis_tokens[consumed + 1] if consumed + 1 < total else None
        decision = _decide(reference, r, hypothesis_tokens[consumed], following, config)
        if decision is _DEFER:
            break

        if decision is not None:
            target, reason = decision
            for p in range(r, target):
                statuses[p] = WordStatus(Status.SKIPPED, reason)
            statuses[target] = WordStatus(Status.CORRECT)
            r = target + 1
        consumed += 1

    return AlignmentCursor(ref_index=r, consumed_hypothesis_count=consumed)


class AlignmentEngine:
    """Owns the statuses and cursor of one recitation attempt over one passage."""

    def __init__(self, reference: ReferenceIndex, config: Optional[AlignmentConfig] = None):
        self.reference = reference
        self.config = config or AlignmentConfig()
        self.logger = logging.getLogger(__name__)
        self.cursor = AlignmentCursor()
        self.statuses = new_statuses(len(reference))

    def reset(self):
        """Start the attempt over: everything pending, nothing consumed."""
        self.cursor = AlignmentCursor()
        self.statuses = new_statuses(len(self.reference))

    def advance(self, hypothesis_tokens: Sequence[str]) -> AlignmentCursor:
        before = self.cursor
        self.cursor = advance(self.reference, before, self.statuses, hypothesis_tokens, self.config)

        if self.cursor.ref_index != before.ref_index:
            self.logger.debug(
                f"Cursor moved {before.ref_index} -> {self.cursor.ref_index} "
                f"({self.cursor.consumed_hypothesis_count}/{len(hypothesis_tokens)} words consumed)"
            )
        elif self.cursor.consumed_hypothesis_count < len(hypothesis_tokens):
            self.logger.debug(
                f"Waiting for confirmation at word {self.cursor.ref_index}, "
                f"{len(hypothesis_tokens) - self.cursor.consumed_hypothesis_count} words held back"
            )
        return self.cursor

    @property
    def is_complete(self) -> bool:
        return self.cursor.ref_index >= len(self.reference)

    @property
    def correct_count(self) -> int:
        return sum(1 for s in self.statuses if s.status == Status.CORRECT)

    @property
    def skipped_count(self) -> int:
        return sum(1 for s in self.statuses if s.status == Status.SKIPPED)

    def snapshot(self) -> List[WordView]:
        return [
            WordView(token.surface_form, status.status, token.is_segment_boundary, token.segment_index)
            for token, status in zip(self.reference, self.statuses)
        ]
