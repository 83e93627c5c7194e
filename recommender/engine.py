"""Scoring, ranking and explanations built on features, profile and similarity."""

import logging
import random
import threading
import time
from collections import deque
from datetime import date, timedelta, timezone

from recommender.constants import (
    EXPLANATION_MIN_CONTRIBUTION,
    FOR_YOU_SIMILARITY_WEIGHT,
    HYBRID_EXPLANATION_MIN,
    RECENTLY_READ_DAYS,
    SCORE_CACHE_TTL,
    SEMANTIC_EXPLANATION_MIN,
    SERENDIPITY_MAX_AUTHOR,
    SERENDIPITY_MAX_TOPIC,
    SERENDIPITY_MIN_VELOCITY,
    SERENDIPITY_POOL_SIZE,
)
from recommender.events import (
    INDEX_REBUILT,
    PREFERENCES_CHANGED,
    RANKING_UPDATED,
    SETTINGS_CHANGED,
    STORE_MUTATED,
    TRAINING_EVENT_RECORDED,
)
from recommender.features import build_library_context, extract_features
from recommender.store import muted_lookup
from recommender.types import (
    EngineMode,
    FeatureType,
    ForYouRecommendation,
    RankedDocument,
    RecommendationScore,
    ScoreBreakdown,
    ScoreComponent,
    utcnow,
    weighted_contribution,
)

logger = logging.getLogger(__name__)

NOT_FOUND = "Document not found"
RANKING_DISABLED = "Ranking disabled"
NO_STRONG_SIGNALS = "No strong signals"
SERENDIPITY_EXPLANATION = "Serendipity: High potential discovery"
RECENT_READING_REASON = "Related to your recent reading"


def _as_utc(value):
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def effective_weight(feature, settings):
    weight = settings.weight(feature)
    mode = settings.engine_mode
    if mode is EngineMode.CLASSIC and feature is FeatureType.LIBRARY_SIMILARITY:
        return 0.0
    if mode is EngineMode.SEMANTIC:
        if feature is FeatureType.LIBRARY_SIMILARITY:
            return weight * 2.0
        if not feature.is_negative:
            return weight * 0.5
    return weight


def explain(breakdown, mode):
    strong = [(f, v) for f, v in breakdown.items() if v > EXPLANATION_MIN_CONTRIBUTION]
    if not strong:
        return NO_STRONG_SIGNALS
    strong.sort(key=lambda kv: kv[1], reverse=True)
    reasons = [f.display_name for f, _ in strong[:2]]

    similarity = breakdown.get(FeatureType.LIBRARY_SIMILARITY, 0.0)
    if mode is EngineMode.SEMANTIC and similarity > SEMANTIC_EXPLANATION_MIN:
        return "AI: " + ", ".join(reasons)
    if mode is EngineMode.HYBRID and similarity > HYBRID_EXPLANATION_MIN:
        reasons.insert(0, "AI-enhanced")
    return ", ".join(reasons)


def compute_score(features, settings):
    breakdown = {}
    total = 0.0
    for feature in FeatureType:
        contribution = weighted_contribution(feature, features.get(feature, 0.0), effective_weight(feature, settings))
        breakdown[feature] = contribution
        total += contribution
    return RecommendationScore(
        total=total,
        breakdown=breakdown,
        explanation=explain(breakdown, settings.engine_mode),
        features=dict(features),
    )


def is_serendipity_candidate(score):
    features = score.features
    return (
        features.get(FeatureType.FIELD_CITATION_VELOCITY, 0.0) > SERENDIPITY_MIN_VELOCITY
        and features.get(FeatureType.AUTHOR_STARRED, 0.0) < SERENDIPITY_MAX_AUTHOR
        and features.get(FeatureType.READING_TIME_TOPIC, 0.0) < SERENDIPITY_MAX_TOPIC
    )


def _slot_count(total, frequency):
    count = 0
    position = frequency
    while position < total:
        count += 1
        position += frequency + 1
    return count


def inject_serendipity(scored, pool, frequency):
    """Splice one pool item in after every `frequency` output positions.

    The pool items that will fill slots are taken out of the scored order
    before the walk, so every slot that fits is filled and no id appears
    twice.
    """
    reserved = deque()
    reserved_ids = set()
    wanted = _slot_count(len(scored), frequency)
    for doc_id, score in pool:
        if len(reserved) >= wanted:
            break
        if doc_id not in reserved_ids:
            reserved.append((doc_id, score))
            reserved_ids.add(doc_id)

    queue = deque(item for item in scored if item[0] not in reserved_ids)
    emitted = set()
    result = []
    next_slot = frequency

    while queue or reserved:
        if reserved and (len(result) == next_slot or not queue):
            doc_id, score = reserved.popleft()
            slot_score = RecommendationScore(
                total=score.total,
                breakdown=score.breakdown,
                explanation=SERENDIPITY_EXPLANATION,
                is_serendipity_slot=True,
                features=score.features,
            )
            result.append(RankedDocument(doc_id, slot_score, is_serendipity_slot=True))
            emitted.add(doc_id)
            next_slot += frequency + 1
            continue
        doc_id, score = queue.popleft()
        if doc_id in emitted:
            continue
        result.append(RankedDocument(doc_id, score))
        emitted.add(doc_id)
    return result


class RecommendationEngine:
    """Scores and ranks the documents of one library for its profile.

    Scores are cached per document for `cache_ttl` seconds. Every change
    topic the engine subscribes to on the channel clears the cache.
    """

    def __init__(
        self,
        store,
        profiles,
        settings_store,
        similarity=None,
        learner=None,
        channel=None,
        library_id=None,
        rng=None,
        timer=time.monotonic,
        clock=utcnow,
        current_year=None,
        cache_ttl=SCORE_CACHE_TTL,
    ):
        self.store = store
        self.profiles = profiles
        self.settings_store = settings_store
        self.similarity = similarity
        self.learner = learner
        self.channel = channel
        self.library_id = library_id
        self.rng = rng or random.Random()
        self.timer = timer
        self.clock = clock
        self.current_year = current_year
        self.cache_ttl = cache_ttl

        self._lock = threading.RLock()
        self._scores = {}
        self._library = None
        self._last_ranking = None
        self._muted = muted_lookup(store)

        if channel is not None:
            for topic in (TRAINING_EVENT_RECORDED, SETTINGS_CHANGED, STORE_MUTATED, INDEX_REBUILT, PREFERENCES_CHANGED):
                channel.subscribe(topic, self._on_change)

    # Scoring

    def score(self, doc_id):
        now = self.timer()
        with self._lock:
            cached = self._scores.get(doc_id)
            if cached is not None and now - cached[1] < self.cache_ttl:
                return cached[0]

        document = self.store.get_document_detail(doc_id)
        if document is None:
            return RecommendationScore(total=0.0, explanation=NOT_FOUND)

        settings = self.settings_store.get()
        result = compute_score(self.features_for(document, settings), settings)
        with self._lock:
            self._scores[doc_id] = (result, now)
        return result

    def features_for(self, document, settings=None):
        settings = settings or self.settings_store.get()
        features = extract_features(
            document,
            self.profiles.peek(self.library_id),
            self._library_context(),
            muted_lookup=self._muted,
            smart_searches=self.store.list_smart_searches(),
            current_year=self.current_year or date.today().year,
        )
        if settings.engine_mode.requires_embeddings and self.similarity is not None:
            features[FeatureType.LIBRARY_SIMILARITY] = self.similarity.similarity_score(document.id)
        return features

    def score_breakdown(self, doc_id):
        document = self.store.get_document_detail(doc_id)
        if document is None:
            return None
        settings = self.settings_store.get()
        features = self.features_for(document, settings)
        components = [
            ScoreComponent(feature, features.get(feature, 0.0), effective_weight(feature, settings))
            for feature in FeatureType
        ]
        components.sort(key=lambda c: abs(c.contribution), reverse=True)
        return ScoreBreakdown(total=sum(c.contribution for c in components), components=components)

    # Ranking

    def rank(self, doc_ids):
        doc_ids = list(doc_ids)
        settings = self.settings_store.get()
        if not settings.enabled:
            disabled = RecommendationScore(total=0.0, explanation=RANKING_DISABLED)
            return [RankedDocument(doc_id, disabled) for doc_id in doc_ids]

        key = tuple(doc_ids)
        now = self.timer()
        throttle = settings.rerank_throttle_minutes * 60
        with self._lock:
            last = self._last_ranking
            if last is not None and last[0] == key and now - last[2] < throttle:
                logger.debug("Re-rank throttled, returning previous ranking")
                return list(last[1])

        scored = [(doc_id, self.score(doc_id)) for doc_id in doc_ids]
        scored.sort(key=lambda pair: pair[1].total, reverse=True)

        pool = [pair for pair in scored if is_serendipity_candidate(pair[1])]
        self.rng.shuffle(pool)
        ranking = inject_serendipity(scored, pool[:SERENDIPITY_POOL_SIZE], settings.serendipity_frequency)

        with self._lock:
            self._last_ranking = (key, ranking, now)
        logger.debug("Ranked %d documents", len(doc_ids))
        if self.channel is not None:
            self.channel.publish(RANKING_UPDATED, count=len(ranking))
        return list(ranking)

    # Personalised lists

    def for_you(self, candidate_ids, recently_read_ids=(), limit=10):
        recently_read = set(recently_read_ids)
        settings = self.settings_store.get()
        use_similarity = (
            settings.engine_mode.requires_embeddings
            and bool(recently_read)
            and self.similarity is not None
            and self.similarity.has_index
        )

        scored = []
        for candidate_id in candidate_ids:
            if candidate_id in recently_read:
                continue
            base = self.score(candidate_id)
            total = base.total
            reason = base.explanation
            if use_similarity:
                similarity = self.similarity.similarity_score(candidate_id)
                total += similarity * FOR_YOU_SIMILARITY_WEIGHT
                if similarity > 0.5:
                    reason = RECENT_READING_REASON
            scored.append(ForYouRecommendation(candidate_id, total, reason))

        scored.sort(key=lambda rec: rec.score, reverse=True)
        logger.info("Generated %d 'for you' recommendations", min(limit, len(scored)))
        return scored[:limit]

    def for_you_from_library(self, library_id, limit=10):
        documents = self.store.query_documents(library_id)
        cutoff = self.clock() - timedelta(days=RECENTLY_READ_DAYS)
        recently_read = [
            d.id for d in documents
            if d.is_read and d.date_modified is not None and _as_utc(d.date_modified) > cutoff
        ]
        unread = [d.id for d in documents if not d.is_read]
        return self.for_you(unread, recently_read, limit)

    # Training and similarity passthroughs

    def train(self, event):
        profile = self.learner.train(self.library_id, event)
        self.invalidate_cache()
        return profile

    def undo_training(self, event):
        profile = self.learner.undo(self.library_id, event)
        self.invalidate_cache()
        return profile

    def build_index(self, library_ids=None):
        if self.similarity is None:
            return 0
        if library_ids is None:
            library_ids = [self.library_id]
        count = self.similarity.build_index(library_ids)
        self.invalidate_cache()
        return count

    def find_similar(self, doc_id, top_k=10):
        if self.similarity is None:
            return []
        return self.similarity.find_similar(doc_id, top_k)

    def group_recommendations(self, library_id, candidate_ids, top_k=10):
        if self.similarity is None:
            return []
        return self.similarity.group_recommendations(library_id, candidate_ids, top_k)

    def invalidate_cache(self):
        with self._lock:
            self._scores.clear()
            self._library = None
            self._last_ranking = None
        if self.similarity is not None:
            self.similarity.invalidate_cache()
        logger.debug("Recommendation cache invalidated")

    def _library_context(self):
        with self._lock:
            if self._library is None:
                self._library = build_library_context(self.store.query_documents(self.library_id))
            return self._library

    def _on_change(self, **_):
        self.invalidate_cache()
