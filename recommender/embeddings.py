"""Deterministic text embeddings.

Two paths, in priority order:

1. A pretrained word-vector table: tokens are looked up, weighted by
   1 / log(tf + 1), averaged, normalized and resampled to the target size.
2. A hashed bag-of-words fallback with no external data, used when no table
   is loaded or when no token is found in it.

Both paths give identical output for identical text on every platform: hashing
uses blake2b rather than the per-process salted ``hash()``.
"""

import hashlib
import logging
import math
import os

import joblib
import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _sk_cosine
from sklearn.preprocessing import normalize

from recommender.constants import EMBEDDING_DIM, HASH_SLOT_WEIGHTS
from recommender.profile import family_name
from utils.text import tokenize

logger = logging.getLogger(__name__)

_HASH_PERSONS = (b"pp-slot-0", b"pp-slot-1", b"pp-slot-2")


def l2_normalize(vector):
    """Unit-length copy of a 1-D vector; the zero vector stays zero."""
    arr = np.asarray(vector, dtype=np.float64).reshape(1, -1)
    return normalize(arr, norm="l2")[0]


def cosine_similarity(a, b):
    a = np.asarray(a, dtype=np.float64).reshape(1, -1)
    b = np.asarray(b, dtype=np.float64).reshape(1, -1)
    if a.shape != b.shape:
        raise ValueError(f"dimension mismatch: {a.shape[1]} != {b.shape[1]}")
    if not np.any(a) or not np.any(b):
        return 0.0
    return float(_sk_cosine(a, b)[0, 0])


def stable_hash(token, seed):
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8, person=_HASH_PERSONS[seed]).digest()
    return int.from_bytes(digest, "little")


def hash_slots(token, dim=EMBEDDING_DIM):
    """Three distinct slot indices for a token, one per hash function."""
    slots = []
    for seed in range(len(HASH_SLOT_WEIGHTS)):
        idx = stable_hash(token, seed) % dim
        while idx in slots:
            idx = (idx + 1) % dim
        slots.append(idx)
    return slots


def document_text(document):
    parts = [document.title or "", document.abstract or ""]
    parts.extend(family_name(a) for a in document.authors)
    if document.venue:
        parts.append(document.venue)
    parts.extend(document.tags)
    if document.primary_category:
        parts.append(document.primary_category)
    return " ".join(p for p in parts if p)


class WordVectorTable:
    """Pretrained word vectors keyed by lowercase word, persisted with joblib."""

    def __init__(self, vectors):
        self.vectors = {str(w).lower(): np.asarray(v, dtype=np.float64) for w, v in vectors.items()}
        dims = {v.shape[0] for v in self.vectors.values()}
        if len(dims) > 1:
            raise ValueError(f"inconsistent word vector sizes: {sorted(dims)}")
        self.dim = dims.pop() if dims else 0

    def __len__(self):
        return len(self.vectors)

    def __contains__(self, word):
        return word in self.vectors

    def get(self, word):
        return self.vectors.get(word)

    def save(self, path):
        joblib.dump(self.vectors, path)

    @classmethod
    def load(cls, path):
        table = cls(joblib.load(path))
        logger.info("Loaded %d word vectors (dim=%d) from %s", len(table), table.dim, path)
        return table

    @classmethod
    def load_if_present(cls, path):
        """None when no path is configured or the file is missing."""
        if not path:
            return None
        if not os.path.exists(path):
            logger.warning("Word vectors not found, using hashed embeddings: %s", path)
            return None
        return cls.load(path)


class EmbeddingGenerator:
    def __init__(self, dim=EMBEDDING_DIM, word_vectors=None):
        self.dim = dim
        self.word_vectors = word_vectors if word_vectors is not None and len(word_vectors) else None

    def embed_document(self, document):
        return self.embed_text(document_text(document))

    def embed_text(self, text):
        tokens = tokenize(text)
        if not tokens:
            return np.zeros(self.dim, dtype=np.float32)
        if self.word_vectors is not None:
            embedding = self._word_vector_embedding(tokens)
            if embedding is not None:
                return embedding
        return self.hashed_embedding(tokens)

    def hashed_embedding(self, tokens):
        vec = np.zeros(self.dim, dtype=np.float64)
        for token in tokens:
            for idx, weight in zip(hash_slots(token, self.dim), HASH_SLOT_WEIGHTS):
                vec[idx] += weight
        return l2_normalize(vec).astype(np.float32)

    def _word_vector_embedding(self, tokens):
        counts = {}
        for token in tokens:
            counts[token] = counts.get(token, 0) + 1

        vectors = []
        weights = []
        for token in tokens:
            vector = self.word_vectors.get(token)
            if vector is None:
                continue
            vectors.append(vector)
            # Repeated words in the same text count for less
            weights.append(1.0 / math.log(counts[token] + 1.0))
        if not vectors:
            return None

        stacked = np.vstack(vectors)
        w = np.asarray(weights, dtype=np.float64)
        aggregated = np.sum(stacked * w[:, None], axis=0) / w.sum()
        aggregated = l2_normalize(aggregated)

        source_dim = aggregated.shape[0]
        stride = source_dim / self.dim
        indices = [min(int(i * stride), source_dim - 1) for i in range(self.dim)]
        return l2_normalize(aggregated[indices]).astype(np.float32)


def centroid(vectors):
    """Normalized mean of a set of embeddings, or None for an empty set."""
    vectors = [np.asarray(v, dtype=np.float64) for v in vectors]
    if not vectors:
        return None
    return l2_normalize(np.mean(np.vstack(vectors), axis=0))
