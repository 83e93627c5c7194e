"""Learned preference profile and its lock-guarded per-library store."""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from recommender.constants import MAX_TRAINING_EVENTS
from recommender.types import TrainingEvent, utcnow

logger = logging.getLogger(__name__)

AUTHOR = "author"
VENUE = "venue"
TOPIC = "topic"
CATEGORY = "category"


def family_name(author):
    """Lowercased family name used as the author affinity key.

    "Einstein, Albert" and "Albert Einstein" both map to "einstein".
    """
    text = (author or "").strip()
    if not text:
        return ""
    if "," in text:
        return text.split(",", 1)[0].strip().lower()
    return text.split()[-1].lower()


@dataclass
class Profile:
    author_affinities: Dict[str, float] = field(default_factory=dict)
    venue_affinities: Dict[str, float] = field(default_factory=dict)
    topic_affinities: Dict[str, float] = field(default_factory=dict)
    training_events: List[TrainingEvent] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def is_cold_start(self):
        return not (self.author_affinities or self.venue_affinities or self.topic_affinities)

    @property
    def preference_count(self):
        return len(self.author_affinities) + len(self.venue_affinities) + len(self.topic_affinities)

    def author_affinity(self, name):
        return self.author_affinities.get((name or "").lower(), 0.0)

    def venue_affinity(self, venue):
        return self.venue_affinities.get((venue or "").lower(), 0.0)

    def topic_affinity(self, topic):
        return self.topic_affinities.get((topic or "").lower(), 0.0)

    def affinity_map(self, kind):
        """Map that stores a feature-key prefix; categories share the topic map."""
        if kind == AUTHOR:
            return self.author_affinities
        if kind == VENUE:
            return self.venue_affinities
        if kind in (TOPIC, CATEGORY):
            return self.topic_affinities
        return None

    def all_affinities(self):
        return [self.author_affinities, self.venue_affinities, self.topic_affinities]

    def append_event(self, event):
        self.training_events.append(event)
        overflow = len(self.training_events) - MAX_TRAINING_EVENTS
        if overflow > 0:
            del self.training_events[:overflow]

    def find_event(self, event_id):
        for event in self.training_events:
            if event.id == event_id:
                return event
        return None

    def remove_event(self, event_id):
        before = len(self.training_events)
        self.training_events = [e for e in self.training_events if e.id != event_id]
        return len(self.training_events) != before

    def to_dict(self):
        return {
            "authorAffinities": dict(self.author_affinities),
            "venueAffinities": dict(self.venue_affinities),
            "topicAffinities": dict(self.topic_affinities),
            "trainingEvents": [e.to_dict() for e in self.training_events],
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data):
        def floats(value):
            return {str(k): float(v) for k, v in (value or {}).items()}

        last_updated = data.get("lastUpdated")
        return cls(
            author_affinities=floats(data.get("authorAffinities")),
            venue_affinities=floats(data.get("venueAffinities")),
            topic_affinities=floats(data.get("topicAffinities")),
            training_events=[TrainingEvent.from_dict(e) for e in data.get("trainingEvents") or []],
            last_updated=datetime.fromisoformat(last_updated) if last_updated else utcnow(),
        )


def serialize_profile(profile):
    # Sorted keys and fixed separators keep the blob byte-stable.
    return json.dumps(profile.to_dict(), sort_keys=True, separators=(",", ":"))


def deserialize_profile(blob):
    return Profile.from_dict(json.loads(blob))


class ProfileStore:
    """Owns one lazily loaded Profile per library and persists it through the store."""

    def __init__(self, store):
        self.store = store
        self.lock = threading.RLock()
        self._profiles = {}

    def get(self, library_id):
        with self.lock:
            profile = self._profiles.get(library_id)
            if profile is None:
                profile = self._load(library_id)
                self._profiles[library_id] = profile
            return profile

    def peek(self, library_id):
        """Return the profile only if it already exists, without creating one."""
        with self.lock:
            if library_id in self._profiles:
                return self._profiles[library_id]
            blob = self.store.get_profile(library_id)
            if not blob:
                return None
            return self.get(library_id)

    def save(self, library_id):
        with self.lock:
            profile = self.get(library_id)
            self.store.save_profile(library_id, serialize_profile(profile))

    def _load(self, library_id):
        blob = self.store.get_profile(library_id)
        if not blob:
            return Profile()
        try:
            return deserialize_profile(blob)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable profile for library %s: %s", library_id, exc)
            return Profile()
