"""
Flattened, normalized view of a reference passage (a list of ayahs).
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple, Union

from .text_normalization import normalize

logger = logging.getLogger(__name__)

Segment = Union[str, Sequence[str]]


@dataclass(frozen=True)
class Token:
    """One word of the reference passage."""
    surface_form: str
    normalized_form: str
    segment_index: int
    is_segment_boundary: bool


class ReferenceIndex:
    """Immutable ordered sequence of reference tokens for one loaded passage."""

    def __init__(self, tokens: Sequence[Token], segment_count: int):
        self._tokens: Tuple[Token, ...] = tuple(tokens)
        self._segment_count = segment_count
        starts = []
        for i, token in enumerate(self._tokens):
            if i == 0 or self._tokens[i - 1].is_segment_boundary:
                starts.append(i)
        self._segment_starts: Tuple[int, ...] = tuple(starts)
        self._start_set = frozenset(starts)

    def __len__(self) -> int:
        return len(self._tokens)

    def __getitem__(self, position: int) -> Token:
        return self._tokens[position]

    def __iter__(self) -> Iterator[Token]:
        return iter(self._tokens)

    @property
    def tokens(self) -> Tuple[Token, ...]:
        return self._tokens

    @property
    def segment_count(self) -> int:
        """Number of segments supplied, including ones that produced no tokens."""
        return self._segment_count

    @property
    def segment_starts(self) -> Tuple[int, ...]:
        """Position of the first token of every non-empty segment, in order."""
        return self._segment_starts

    def is_segment_start(self, position: int) -> bool:
        return position in self._start_set

    def segment_end(self, position: int) -> int:
        """Position of the boundary token closing the segment that contains ``position``."""
        end = position
        while end < len(self._tokens) - 1 and not self._tokens[end].is_segment_boundary:
            end += 1
        return end

    def normalized_forms(self) -> List[str]:
        return [token.normalized_form for token in self._tokens]


def build(segments: Sequence[Segment]) -> ReferenceIndex:
    """
    Build a ReferenceIndex from ordered segments.

    Args:
        segments: Each segment is either a list of surface words or a single
            string that is split on whitespace.

    Returns:
        The flattened index. Words that normalize to nothing (lone waqf signs)
        are dropped; the last remaining word of each segment is the boundary.
        No segments gives an empty index.
    """
    if segments is None or isinstance(segments, str):
        raise ValueError("segments must be a sequence of segments")

    tokens: List[Token] = []
    dropped = 0
    for segment_index, segment in enumerate(segments):
        if isinstance(segment, str):
            words = segment.split()
        else:
            words = [word for item in segment for word in item.split()]
        kept = []
        for word in words:
            normalized = normalize(word)
            if normalized:
                kept.append((word, normalized))
            else:
                dropped += 1
        for i, (surface, normalized) in enumerate(kept):
            tokens.append(Token(
                surface_form=surface,
                normalized_form=normalized,
                segment_index=segment_index,
                is_segment_boundary=(i == len(kept) - 1),
            ))

    if dropped:
        logger.debug(f"Dropped {dropped} non-word symbols while building the reference index")
    return ReferenceIndex(tokens, segment_count=len(segments))
