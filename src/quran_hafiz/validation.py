"""
End-of-attempt scoring of a recitation and feedback categories.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .alignment_engine import Status, WordStatus
from .api_clients import Ayah
from .text_normalization import tokenize

DEFAULT_PASS_PERCENTAGE = 85.0

# Message categories; the wording itself belongs to the front end
COMPLETED = "completed"
COMPLETED_WITH_ERRORS = "completed_with_errors"
IN_PROGRESS = "in_progress"
NEEDS_REVIEW = "needs_review"


@dataclass
class WordResult:
    """Positional comparison of one spoken word with the expected one."""
    word: str
    expected: str
    is_correct: bool
    position: int


@dataclass
class ValidationResult:
    """Outcome of checking a finished recitation of one ayah."""
    is_valid: bool
    match_percentage: float
    ayah_number: int
    message_category: str
    word_results: List[WordResult] = field(default_factory=list)


@dataclass
class RecitationSummary:
    """Totals of a live alignment attempt."""
    total_words: int
    correct_words: int
    skipped_words: int
    pending_words: int
    match_percentage: float
    is_complete: bool
    is_valid: bool
    message_category: str


def message_category(is_complete: bool, error_count: int) -> str:
    """Map attempt state to the kind of encouragement to show."""
    if is_complete:
        return COMPLETED if error_count == 0 else COMPLETED_WITH_ERRORS
    return IN_PROGRESS if error_count == 0 else NEEDS_REVIEW


def validate_recitation(
    user_text: str,
    reference_text: str,
    ayah_number: int,
    pass_percentage: float = DEFAULT_PASS_PERCENTAGE
) -> ValidationResult:
    """
    Compare a complete transcript with an ayah word by word.

    Args:
        user_text: What the recognizer heard
        reference_text: The ayah text
        ayah_number: Ayah number within its surah, reported back as is
        pass_percentage: Minimum match percentage to accept the recitation

    Returns:
        ValidationResult with one WordResult per position of the longer side
    """
    user_words = tokenize(user_text)
    reference_words = tokenize(reference_text)

    word_results = []
    correct_count = 0
    for i in range(max(len(user_words), len(reference_words))):
        word = user_words[i] if i < len(user_words) else ""
        expected = reference_words[i] if i < len(reference_words) else ""
        is_correct = word == expected
        if is_correct:
            correct_count += 1
        word_results.append(WordResult(word=word, expected=expected, is_correct=is_correct, position=i))

    match_percentage = correct_count / len(reference_words) * 100 if reference_words else 0.0
    is_valid = match_percentage >= pass_percentage

    return ValidationResult(
        is_valid=is_valid,
        match_percentage=match_percentage,
        ayah_number=ayah_number,
        message_category=message_category(True, len(word_results) - correct_count),
        word_results=word_results,
    )


def find_best_matching_ayah(
    user_text: str,
    ayahs: Sequence[Ayah],
    start_from_ayah: int = 1,
    pass_percentage: float = DEFAULT_PASS_PERCENTAGE
) -> Optional[Tuple[Ayah, ValidationResult]]:
    """Return the ayah (numbered from ``start_from_ayah`` on) the transcript matches best, if any matches at all."""
    best = None
    highest = 0.0
    for ayah in ayahs:
        if ayah.number_in_surah < start_from_ayah:
            continue
        result = validate_recitation(user_text, ayah.text, ayah.number_in_surah, pass_percentage)
        if result.match_percentage > highest:
            highest = result.match_percentage
            best = (ayah, result)
    return best


def summarize_statuses(
    statuses: Sequence[WordStatus],
    is_complete: bool,
    pass_percentage: float = DEFAULT_PASS_PERCENTAGE
) -> RecitationSummary:
    correct = sum(1 for s in statuses if s.status == Status.CORRECT)
    skipped = sum(1 for s in statuses if s.status == Status.SKIPPED)
    total = len(statuses)
    match_percentage = correct / total * 100 if total else 0.0
    return RecitationSummary(
        total_words=total,
        correct_words=correct,
        skipped_words=skipped,
        pending_words=total - correct - skipped,
        match_percentage=match_percentage,
        is_complete=is_complete,
        is_valid=is_complete and match_percentage >= pass_percentage,
        message_category=message_category(is_complete, skipped),
    )
