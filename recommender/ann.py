"""Approximate nearest-neighbour index over document embeddings.

A faiss HNSW graph with inner-product distance over L2-normalised vectors, so
search scores are cosine similarities. Nodes are only ever appended: there is
no update or delete, a changed document set is handled by building a fresh
index.
"""

import logging
import threading

import faiss
import numpy as np

from recommender.constants import (
    ANN_EF_CONSTRUCTION,
    ANN_EF_SEARCH,
    ANN_MAX_CONNECTIONS,
    EMBEDDING_DIM,
)
from recommender.embeddings import l2_normalize

logger = logging.getLogger(__name__)


class AnnIndex:
    def __init__(
        self,
        dim=EMBEDDING_DIM,
        max_connections=ANN_MAX_CONNECTIONS,
        ef_construction=ANN_EF_CONSTRUCTION,
        ef_search=ANN_EF_SEARCH,
    ):
        self.dim = dim
        self.max_connections = max_connections
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self._lock = threading.RLock()

        base = faiss.IndexHNSWFlat(dim, max_connections, faiss.METRIC_INNER_PRODUCT)
        base.hnsw.efConstruction = ef_construction
        base.hnsw.efSearch = ef_search
        self._base = base
        self._index = faiss.IndexIDMap2(base)

        # faiss keys are int64; keep the mapping to document ids both ways
        self._ids = []
        self._positions = {}
        self._vectors = {}

    def __len__(self):
        return len(self._ids)

    def __contains__(self, doc_id):
        return doc_id in self._positions

    @classmethod
    def build(cls, items, **kwargs):
        index = cls(**kwargs)
        added = index.add_batch(items)
        logger.debug("Built ANN index with %d nodes", added)
        return index

    def ids(self):
        return list(self._ids)

    def get_vector(self, doc_id):
        return self._vectors.get(doc_id)

    def add_batch(self, items):
        """Insert many embeddings in one faiss call. Already indexed ids are skipped."""
        fresh_ids = []
        fresh_vectors = []
        with self._lock:
            seen = set()
            for doc_id, vector in items:
                vec = self._prepare(vector)
                if doc_id in self._positions or doc_id in seen:
                    continue
                seen.add(doc_id)
                fresh_ids.append(doc_id)
                fresh_vectors.append(vec)
            if fresh_ids:
                self._append(fresh_ids, np.vstack(fresh_vectors))
        return len(fresh_ids)

    def add(self, doc_id, vector):
        """Insert one embedding. Returns False if the id is already indexed."""
        vec = self._prepare(vector)
        with self._lock:
            if doc_id in self._positions:
                return False
            self._append([doc_id], vec.reshape(1, -1))
            return True

    def search(self, vector, k=10):
        """Top-k (doc_id, similarity) pairs, best first."""
        if k <= 0:
            return []
        query = self._prepare(vector).reshape(1, -1)
        with self._lock:
            if not self._ids:
                return []
            self._base.hnsw.efSearch = max(self.ef_search, k)
            sims, keys = self._index.search(query, min(k, len(self._ids)))
        return [(self._ids[int(key)], float(sim)) for sim, key in zip(sims[0], keys[0]) if key >= 0]

    def _append(self, doc_ids, matrix):
        start = len(self._ids)
        keys = np.arange(start, start + len(doc_ids), dtype=np.int64)
        self._index.add_with_ids(matrix, keys)
        for offset, doc_id in enumerate(doc_ids):
            self._ids.append(doc_id)
            self._positions[doc_id] = start + offset
            self._vectors[doc_id] = matrix[offset]

    def _prepare(self, vector):
        vec = np.asarray(vector, dtype=np.float64).ravel()
        if vec.shape[0] != self.dim:
            raise ValueError(f"expected a {self.dim}-dimensional vector, got {vec.shape[0]}")
        return np.ascontiguousarray(l2_normalize(vec), dtype=np.float32)
