"""Explicit wiring of the recommendation components for one library."""

import logging
import random
import time

from recommender.cold_start import ColdStartBootstrap
from recommender.embeddings import EmbeddingGenerator
from recommender.engine import RecommendationEngine
from recommender.events import EventChannel
from recommender.learner import OnlineLearner
from recommender.profile import ProfileStore
from recommender.settings import SettingsStore
from recommender.signals import SignalCollector
from recommender.similarity import SimilarityService
from recommender.types import utcnow

logger = logging.getLogger(__name__)


class RecommenderContext:
    """Every stateful component, built once and passed around explicitly.

    `store` must provide both the library and the settings interfaces from
    recommender.store.
    """

    def __init__(
        self,
        store,
        library_id,
        word_vectors=None,
        channel=None,
        rng=None,
        timer=time.monotonic,
        clock=utcnow,
        current_year=None,
        cache_ttl=None,
    ):
        self.store = store
        self.library_id = library_id
        self.channel = channel or EventChannel()

        self.profiles = ProfileStore(store)
        self.learner = OnlineLearner(self.profiles, clock=clock)
        self.settings = SettingsStore(store, self.channel)
        self.generator = EmbeddingGenerator(word_vectors=word_vectors)

        extra = {} if cache_ttl is None else {"cache_ttl": cache_ttl}
        self.similarity = SimilarityService(store, self.generator, self.channel, timer=timer, **extra)
        self.engine = RecommendationEngine(
            store,
            self.profiles,
            self.settings,
            similarity=self.similarity,
            learner=self.learner,
            channel=self.channel,
            library_id=library_id,
            rng=rng or random.Random(),
            timer=timer,
            clock=clock,
            current_year=current_year,
            **extra,
        )
        self.signals = SignalCollector(self.learner, library_id, channel=self.channel, timer=timer)
        self.cold_start = ColdStartBootstrap(self.profiles, store, clock=clock)
        logger.debug("Recommender context ready for library %s", library_id)

    def maintenance(self, now=None):
        """Periodic upkeep: decay idle negative affinities, prune noise, persist."""
        decay_days = self.settings.get().negative_decay_days
        decayed = self.learner.decay(self.library_id, now=now, decay_days=decay_days)
        pruned = self.learner.prune(self.library_id)
        self.profiles.save(self.library_id)
        self.engine.invalidate_cache()
        return {"decayed": decayed, "pruned": pruned}
