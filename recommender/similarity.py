"""Embedding index lifecycle, similarity caching and group-mode scoring."""

import logging
import threading
import time

import numpy as np

from recommender.ann import AnnIndex
from recommender.constants import SIMILARITY_CACHE_TTL, SIMILARITY_TOP_K
from recommender.embeddings import EmbeddingGenerator, centroid
from recommender.events import INDEX_REBUILT, STORE_MUTATED
from recommender.features import library_similarity_score

logger = logging.getLogger(__name__)


class SimilarityService:
    """Owns the ANN index built from one or more libraries.

    Store mutations only flag the index as stale; the next query rebuilds it
    from the libraries it was last built from. Only one rebuild runs at a
    time, a concurrent request is dropped rather than queued.
    """

    def __init__(self, store, generator=None, channel=None, timer=time.monotonic, cache_ttl=SIMILARITY_CACHE_TTL, top_k=SIMILARITY_TOP_K):
        self.store = store
        self.generator = generator or EmbeddingGenerator()
        self.channel = channel
        self.timer = timer
        self.cache_ttl = cache_ttl
        self.top_k = top_k

        self._state_lock = threading.RLock()
        self._build_lock = threading.Lock()
        self._index = None
        self._indexed_libraries = []
        self._stale = False
        self._generation = 0  # bumped by every mark_stale
        self._scores = {}
        self._embeddings = {}

        if channel is not None:
            channel.subscribe(STORE_MUTATED, self._on_store_mutated)

    @property
    def has_index(self):
        with self._state_lock:
            return self._index is not None and len(self._index) > 0

    @property
    def is_stale(self):
        with self._state_lock:
            return self._stale

    def indexed_count(self):
        with self._state_lock:
            return len(self._index) if self._index is not None else 0

    def indexed_libraries(self):
        with self._state_lock:
            return list(self._indexed_libraries)

    def build_index(self, library_ids):
        """Embed every document of the given libraries into a fresh index.

        Returns the number of indexed documents, or 0 when another build is
        already in progress.
        """
        if not self._build_lock.acquire(blocking=False):
            logger.info("Index build already running, dropping request")
            return 0
        try:
            library_ids = list(library_ids)
            with self._state_lock:
                generation = self._generation
            documents = {}
            for library_id in library_ids:
                for document in self.store.query_documents(library_id):
                    documents.setdefault(document.id, document)

            embeddings = {doc_id: self.generator.embed_document(doc) for doc_id, doc in documents.items()}
            index = AnnIndex.build(embeddings.items(), dim=self.generator.dim)

            with self._state_lock:
                self._index = index
                self._indexed_libraries = library_ids
                # a mutation that landed mid-build leaves the index stale
                self._stale = self._generation != generation
                self._scores.clear()
                self._embeddings = {} if self._stale else embeddings
            count = len(index)
        finally:
            self._build_lock.release()

        logger.info("Built similarity index: %d documents from %d libraries", count, len(library_ids))
        if self.channel is not None:
            self.channel.publish(INDEX_REBUILT, count=count, library_ids=library_ids)
        return count

    def ensure_fresh_index(self):
        with self._state_lock:
            libraries = list(self._indexed_libraries) if self._stale else None
        if libraries:
            logger.debug("Index is stale, rebuilding before query")
            self.build_index(libraries)

    def mark_stale(self):
        with self._state_lock:
            self._generation += 1
            self._stale = True
            self._scores.clear()
            self._embeddings.clear()

    def invalidate_cache(self):
        with self._state_lock:
            self._scores.clear()

    def clear_index(self):
        with self._state_lock:
            self._index = None
            self._indexed_libraries = []
            self._stale = False
            self._scores.clear()
            self._embeddings.clear()

    def add_to_index(self, doc_id):
        """Insert one document without a rebuild. An already indexed id marks the index stale."""
        with self._state_lock:
            index = self._index
        if index is None:
            return False
        if doc_id in index:
            self.mark_stale()
            return False
        vector = self.embedding_for(doc_id)
        if vector is None:
            return False
        added = index.add(doc_id, vector)
        if added:
            self.invalidate_cache()
        return added

    def embedding_for(self, doc_id):
        with self._state_lock:
            vector = self._embeddings.get(doc_id)
        if vector is not None:
            return vector
        document = self.store.get_document_detail(doc_id)
        if document is None:
            return None
        vector = self.generator.embed_document(document)
        with self._state_lock:
            self._embeddings[doc_id] = vector
        return vector

    def similarity_score(self, doc_id):
        """Aggregated similarity of a document to the indexed libraries, in [0, 1]."""
        self.ensure_fresh_index()
        now = self.timer()
        with self._state_lock:
            cached = self._scores.get(doc_id)
            if cached is not None and now - cached[1] < self.cache_ttl:
                return cached[0]
            index = self._index
        if index is None or len(index) == 0:
            return 0.0

        vector = self.embedding_for(doc_id)
        if vector is None:
            return 0.0
        matches = [sim for other, sim in index.search(vector, self.top_k + 1) if other != doc_id]
        score = library_similarity_score(matches[: self.top_k])

        with self._state_lock:
            self._scores[doc_id] = (score, now)
        return score

    def find_similar(self, doc_id, top_k=10):
        self.ensure_fresh_index()
        with self._state_lock:
            index = self._index
        if index is None:
            return []
        vector = self.embedding_for(doc_id)
        if vector is None:
            return []
        results = index.search(vector, top_k + 1)
        return [(other, sim) for other, sim in results if other != doc_id][:top_k]

    def search_by_text(self, query, top_k=10):
        self.ensure_fresh_index()
        with self._state_lock:
            index = self._index
        if index is None or not (query or "").strip():
            return []
        vector = self.generator.embed_text(query)
        if not np.any(vector):
            return []
        return index.search(vector, top_k)

    def group_recommendations(self, library_id, candidate_ids, top_k=10):
        """Candidates ranked by similarity to the centroid of a library's embeddings."""
        vectors = [self.embedding_for(doc.id) for doc in self.store.query_documents(library_id)]
        center = centroid(v for v in vectors if v is not None)
        if center is None or not np.any(center):
            return []

        scored = []
        for candidate_id in candidate_ids:
            vector = self.embedding_for(candidate_id)
            if vector is None:
                continue
            scored.append((candidate_id, float(np.dot(center, vector))))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [candidate_id for candidate_id, _ in scored[:top_k]]

    def _on_store_mutated(self, **_):
        self.mark_stale()
