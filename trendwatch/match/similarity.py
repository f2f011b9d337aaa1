"""Fuzzy product name similarity."""

import re
from typing import Iterable, Optional

DEFAULT_STOPWORDS = (
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
)

_WHITESPACE = re.compile(r"\s+")


def _stopword_pattern(stopwords: Iterable[str]) -> re.Pattern:
    words = "|".join(re.escape(w) for w in stopwords)
    return re.compile(rf"\b(?:{words})\b", re.IGNORECASE)


_DEFAULT_PATTERN = _stopword_pattern(DEFAULT_STOPWORDS)


def normalize_name(name: Optional[str], stopwords: Optional[Iterable[str]] = None) -> str:
    """Lowercase, collapse whitespace and strip stopwords."""
    if not name:
        return ""
    pattern = _DEFAULT_PATTERN if stopwords is None else _stopword_pattern(stopwords)
    text = _WHITESPACE.sub(" ", name.lower()).strip()
    text = pattern.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def calculate_name_similarity(
    name_a: Optional[str],
    name_b: Optional[str],
    stopwords: Optional[Iterable[str]] = None,
) -> float:
    """
    Score how likely two product names refer to the same product.

    Exact normalized match scores 1.0 and containment scores 0.8. Otherwise
    words longer than two characters are paired off: an identical word earns
    a full point, a word contained in the other (both longer than three
    characters) earns half. Each word of ``name_b`` pairs at most once.

    Args:
        name_a: First product name
        name_b: Second product name
        stopwords: Words ignored during normalization

    Returns:
        Similarity in [0, 1]
    """
    normalized_a = normalize_name(name_a, stopwords)
    normalized_b = normalize_name(name_b, stopwords)

    if not normalized_a or not normalized_b:
        return 0.0

    if normalized_a == normalized_b:
        return 1.0

    if normalized_a in normalized_b or normalized_b in normalized_a:
        return 0.8

    words_a = [w for w in normalized_a.split(" ") if len(w) > 2]
    words_b = [w for w in normalized_b.split(" ") if len(w) > 2]
    if not words_a or not words_b:
        return 0.0

    matches = 0.0
    used: set[int] = set()
    for word_a in words_a:
        for i, word_b in enumerate(words_b):
            if i in used:
                continue
            if word_a == word_b:
                matches += 1.0
                used.add(i)
                break
            if len(word_a) > 3 and len(word_b) > 3 and (word_a in word_b or word_b in word_a):
                matches += 0.5
                used.add(i)
                break

    return matches / max(len(words_a), len(words_b))
