"""One-shot seeding of an empty profile from an existing document collection."""

import logging
import math
import threading
from collections import Counter

from recommender.constants import (
    COLD_START_AUTHOR_SCALE,
    COLD_START_MIN_DOCUMENTS,
    COLD_START_SEARCH_BOOST,
    COLD_START_STARRED_BOOST,
    COLD_START_TOPIC_SCALE,
    COLD_START_VENUE_SCALE,
    MAX_AFFINITY,
    MUTED_AUTHOR_AFFINITY,
    MUTED_CATEGORY_AFFINITY,
    MUTED_VENUE_AFFINITY,
)
from recommender.features import MUTE_AUTHOR, MUTE_CATEGORY, MUTE_VENUE
from recommender.learner import clamp
from recommender.profile import family_name
from recommender.types import utcnow
from utils.text import extract_keywords

logger = logging.getLogger(__name__)


def damped_affinity(count, total, scale):
    if total <= 0 or count <= 0:
        return 0.0
    return math.log(1.0 + (count / total) * scale)


def _count_documents(documents):
    authors, venues, topics = Counter(), Counter(), Counter()
    for doc in documents:
        authors.update({family_name(a) for a in doc.authors} - {""})
        venue = (doc.venue or "").strip().lower()
        if venue:
            venues[venue] += 1
        topics.update(set(extract_keywords(doc.title)))
    return authors, venues, topics


class ColdStartBootstrap:
    """Seeds a cold-start profile at most once per instance.

    Below `min_documents` the call is a no-op and may succeed later once the
    collection has grown. A profile that already holds affinities is never
    touched.
    """

    def __init__(self, profiles, store, min_documents=COLD_START_MIN_DOCUMENTS, max_affinity=MAX_AFFINITY, clock=utcnow):
        self.profiles = profiles
        self.store = store
        self.min_documents = min_documents
        self.max_affinity = max_affinity
        self.clock = clock
        self.fired = False
        self._lock = threading.Lock()

    def bootstrap(self, library_id, documents=None):
        with self._lock:
            if self.fired:
                return False
            if documents is None:
                documents = self.store.query_documents(library_id)
            documents = list(documents)
            if len(documents) < self.min_documents:
                logger.info("Cold start skipped: %d documents, need %d", len(documents), self.min_documents)
                return False

            with self.profiles.lock:
                profile = self.profiles.get(library_id)
                if not profile.is_cold_start:
                    self.fired = True
                    return False
                authors, venues, topics = self._seed(documents)
                profile.author_affinities = authors
                profile.venue_affinities = venues
                profile.topic_affinities = topics
                profile.last_updated = self.clock()
                self.profiles.save(library_id)

            self.fired = True
            logger.info(
                "Cold start seeded %d authors, %d venues, %d topics from %d documents",
                len(authors), len(venues), len(topics), len(documents),
            )
            return True

    def _seed(self, documents):
        total = len(documents)
        author_counts, venue_counts, topic_counts = _count_documents(documents)

        authors = {k: damped_affinity(c, total, COLD_START_AUTHOR_SCALE) for k, c in author_counts.items()}
        venues = {k: damped_affinity(c, total, COLD_START_VENUE_SCALE) for k, c in venue_counts.items()}
        topics = {k: damped_affinity(c, total, COLD_START_TOPIC_SCALE) for k, c in topic_counts.items()}

        starred = {family_name(a) for doc in documents if doc.is_starred for a in doc.authors} - {""}
        for name in starred:
            if name in authors:
                authors[name] *= COLD_START_STARRED_BOOST

        for search in self.store.list_smart_searches() or []:
            for keyword in set(extract_keywords(search.get("query"))):
                topics[keyword] = topics.get(keyword, 0.0) + COLD_START_SEARCH_BOOST

        # Mutes win over anything computed above
        for item in self.store.list_muted_items(MUTE_AUTHOR) or []:
            name = family_name(str(item["value"]))
            if name:
                authors[name] = MUTED_AUTHOR_AFFINITY
        for item in self.store.list_muted_items(MUTE_VENUE) or []:
            venues[str(item["value"]).strip().lower()] = MUTED_VENUE_AFFINITY
        for item in self.store.list_muted_items(MUTE_CATEGORY) or []:
            topics[str(item["value"]).strip().lower()] = MUTED_CATEGORY_AFFINITY

        limit = self.max_affinity
        return (
            {k: clamp(v, limit) for k, v in authors.items()},
            {k: clamp(v, limit) for k, v in venues.items()},
            {k: clamp(v, limit) for k, v in topics.items()},
        )
