"""
Arabic text normalization used for comparing recited words with the mushaf text.
"""

import re
from typing import List

# Tashkeel (fatha .. sukun, tanween, shadda) plus the extended harakat range and dagger alif
_DIACRITICS_RE = re.compile(r"[\u064B-\u065F\u0670]")
_TATWEEL_RE = re.compile(r"\u0640")
# Waqf signs, small high letters and other Quranic annotation marks
_QURANIC_MARKS_RE = re.compile(r"[\u06D6-\u06ED]")
_WHITESPACE_RE = re.compile(r'\s+')

_LETTER_VARIANTS = str.maketrans({
    'أ': 'ا',
    'إ': 'ا',
    'آ': 'ا',
    'ٱ': 'ا',  # Alef Wasla
    'ة': 'ه',  # Teh Marbuta
    'ى': 'ي',  # Alef Maqsura
    'ؤ': 'و',
    'ئ': 'ي',
})


def normalize(text: str) -> str:
    """
    Normalizes Arabic text for matching.

    Removes diacritics and tatweel, unifies hamza carrying letters and
    word-final variants, removes Quranic pause marks and collapses whitespace.
    Display must always use the original text.
    """
    # 1. Harakat, tanween, shadda, sukun, dagger alif
    text = _DIACRITICS_RE.sub('', text)

    # 2. Tatweel (Kashida)
    text = _TATWEEL_RE.sub('', text)

    # 3. Letter forms
    text = text.translate(_LETTER_VARIANTS)

    # 4. Waqf signs and recitation marks
    text = _QURANIC_MARKS_RE.sub('', text)

    # 5. Whitespace
    return _WHITESPACE_RE.sub(' ', text).strip()


def tokenize(text: str) -> List[str]:
    """Split text on whitespace and normalize each word, dropping words that vanish (e.g. a lone waqf sign)."""
    tokens = []
    for word in text.split():
        normalized = normalize(word)
        if normalized:
            tokens.append(normalized)
    return tokens


def strip_quranic_marks(word: str) -> str:
    """Remove waqf signs and annotation marks from a word, keeping its harakat for display."""
    return _QURANIC_MARKS_RE.sub('', word).strip()
