"""
Word similarity scoring based on Levenshtein edit distance.
"""

from rapidfuzz.distance import Levenshtein


def similarity(a: str, b: str) -> float:
    """
    Similarity of two normalized words in [0, 100].

    Defined as 100 * (max_len - distance) / max_len with unit insert, delete
    and substitute costs, so identical words score 100 and a word against the
    empty string scores 0.
    """
    if a == b:
        return 100.0
    max_len = max(len(a), len(b))
    distance = Levenshtein.distance(a, b)
    return 100.0 * (max_len - distance) / max_len
