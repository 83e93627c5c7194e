"""Tokenizing and keyword helpers shared by features, signals and embeddings."""

import re
from collections import Counter

from recommender.constants import MIN_KEYWORD_LENGTH, MIN_TOKEN_LENGTH, STOP_WORDS

_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_WORD = re.compile(r"[^\W_]+")


def extract_keywords(text, min_length=MIN_KEYWORD_LENGTH, stop_words=STOP_WORDS):
    """Lowercase, split on non-alphanumerics, drop short tokens and stop words."""
    if not text:
        return []
    return [
        token
        for token in _NON_ALNUM.split(str(text).lower())
        if len(token) >= min_length and token not in stop_words
    ]


def top_keywords(text, limit):
    # Most significant first: frequency, then longer words, then alphabetical
    counts = Counter(extract_keywords(text))
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], -len(kv[0]), kv[0]))
    return [word for word, _ in ranked[:limit]]


def tokenize(text, min_length=MIN_TOKEN_LENGTH):
    """Word-boundary tokens for embeddings (unicode aware, no stop words)."""
    if not text:
        return []
    return [token for token in _WORD.findall(str(text).lower()) if len(token) >= min_length]
