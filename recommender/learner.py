"""Online learning of profile affinities from training events."""

import logging
from datetime import timedelta

from recommender.constants import (
    DEFAULT_DECAY_DAYS,
    LEARNING_RATE,
    MAX_AFFINITY,
    NEGATIVE_DECAY_FACTOR,
    PRUNE_EPSILON,
)
from recommender.errors import UnknownEventError
from recommender.types import utcnow

logger = logging.getLogger(__name__)


def clamp(value, limit=MAX_AFFINITY):
    return max(-limit, min(limit, value))


def split_feature_key(key):
    """Split "author:einstein" into ("author", "einstein")."""
    kind, sep, name = key.partition(":")
    if not sep or not name:
        return None, None
    return kind.strip().lower(), name.strip().lower()


class OnlineLearner:
    """Applies training events to the profiles held by a ProfileStore.

    Every mutation runs under the profile store's lock, so concurrent callers
    never interleave writes to the same affinity maps.
    """

    def __init__(self, profiles, learning_rate=LEARNING_RATE, max_affinity=MAX_AFFINITY, clock=utcnow):
        self.profiles = profiles
        self.learning_rate = learning_rate
        self.max_affinity = max_affinity
        self.clock = clock

    def train(self, library_id, event):
        with self.profiles.lock:
            profile = self.profiles.get(library_id)
            self._apply(profile, event, sign=1.0)
            profile.append_event(event)
            profile.last_updated = self.clock()
            logger.debug("Applied %s on %s (%d keys)", event.action.value, event.document_id, len(event.deltas))
            return profile

    def undo(self, library_id, event):
        """Apply the inverse of an event and drop it from the log.

        Exact unless the forward step saturated at the clamp boundary. An
        event no longer in the log raises UnknownEventError and changes
        nothing, so an undo never runs twice.
        """
        with self.profiles.lock:
            profile = self.profiles.get(library_id)
            if not profile.remove_event(event.id):
                raise UnknownEventError(event.id)
            self._apply(profile, event, sign=-1.0)
            profile.last_updated = self.clock()
            return profile

    def undo_by_id(self, library_id, event_id):
        with self.profiles.lock:
            profile = self.profiles.get(library_id)
            event = profile.find_event(event_id)
            if event is None:
                raise UnknownEventError(event_id)
            self.undo(library_id, event)
            return event

    def decay(self, library_id, now=None, decay_days=DEFAULT_DECAY_DAYS):
        """Shrink negative affinities, only once the profile has been idle for decay_days."""
        now = now or self.clock()
        with self.profiles.lock:
            profile = self.profiles.get(library_id)
            if now - profile.last_updated <= timedelta(days=decay_days):
                return False
            for affinities in profile.all_affinities():
                for key, value in affinities.items():
                    if value < 0:
                        affinities[key] = value * NEGATIVE_DECAY_FACTOR
            profile.last_updated = now
            logger.info("Decayed negative affinities for library %s", library_id)
            return True

    def prune(self, library_id, epsilon=PRUNE_EPSILON):
        with self.profiles.lock:
            profile = self.profiles.get(library_id)
            removed = 0
            for affinities in profile.all_affinities():
                noise = [k for k, v in affinities.items() if abs(v) < epsilon]
                for key in noise:
                    del affinities[key]
                removed += len(noise)
            return removed

    def reset(self, library_id):
        with self.profiles.lock:
            profile = self.profiles.get(library_id)
            for affinities in profile.all_affinities():
                affinities.clear()
            profile.training_events.clear()
            profile.last_updated = self.clock()
            return profile

    def _apply(self, profile, event, sign):
        multiplier = event.action.multiplier
        for key, base_delta in event.deltas.items():
            kind, name = split_feature_key(key)
            affinities = profile.affinity_map(kind) if kind else None
            if affinities is None:
                logger.debug("Ignoring unknown feature key %r", key)
                continue
            delta = base_delta * multiplier * self.learning_rate
            old = affinities.get(name, 0.0)
            affinities[name] = clamp(old + sign * delta, self.max_affinity)
