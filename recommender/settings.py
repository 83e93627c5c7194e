"""Recommendation settings, weight presets and their persisted flat form."""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Dict

from recommender.constants import (
    DEFAULT_DECAY_DAYS,
    DEFAULT_RERANK_THROTTLE_MINUTES,
    DEFAULT_SERENDIPITY_FREQUENCY,
)
from recommender.events import SETTINGS_CHANGED
from recommender.types import EngineMode, FeatureType
from utils.parsing import parse_bool, parse_int

logger = logging.getLogger(__name__)

WEIGHT_PREFIX = "weight."

_F = FeatureType

# Features a preset leaves out fall back to their default weight
PRESETS = {
    "focused": {
        _F.AUTHOR_STARRED: 1.0,
        _F.COLLECTION_MATCH: 0.9,
        _F.KEEP_RATE_AUTHOR: 0.8,
        _F.VENUE_FREQUENCY: 0.7,
        _F.RECENCY: 0.2,
        _F.CITATION_OVERLAP: 0.3,
        _F.FIELD_CITATION_VELOCITY: 0.1,
        _F.MUTED_AUTHOR: -1.0,
        _F.MUTED_CATEGORY: -0.8,
        _F.MUTED_VENUE: -0.6,
        _F.DISMISS_RATE_AUTHOR: -0.6,
    },
    "balanced": {},
    "exploratory": {
        _F.AUTHOR_STARRED: 0.3,
        _F.COLLECTION_MATCH: 0.3,
        _F.KEEP_RATE_AUTHOR: 0.2,
        _F.VENUE_FREQUENCY: 0.1,
        _F.RECENCY: 0.6,
        _F.CITATION_OVERLAP: 0.5,
        _F.FIELD_CITATION_VELOCITY: 0.7,
        _F.AUTHOR_COAUTHORSHIP: 0.6,
        _F.LIBRARY_SIMILARITY: 0.5,
        _F.MUTED_AUTHOR: -1.0,
        _F.MUTED_CATEGORY: -0.4,
        _F.MUTED_VENUE: -0.3,
        _F.DISMISS_RATE_AUTHOR: -0.3,
    },
    "research": {
        _F.CITATION_OVERLAP: 0.9,
        _F.AUTHOR_COAUTHORSHIP: 0.7,
        _F.FIELD_CITATION_VELOCITY: 0.8,
        _F.LIBRARY_SIMILARITY: 0.8,
        _F.AUTHOR_STARRED: 0.6,
        _F.COLLECTION_MATCH: 0.5,
        _F.RECENCY: 0.4,
        _F.SMART_SEARCH_MATCH: 0.7,
        _F.MUTED_AUTHOR: -1.0,
        _F.MUTED_CATEGORY: -0.8,
        _F.MUTED_VENUE: -0.6,
        _F.DISMISS_RATE_AUTHOR: -0.5,
    },
    "defaults": {},
}


@dataclass(frozen=True)
class Settings:
    weights: Dict[FeatureType, float] = field(default_factory=dict)
    serendipity_frequency: int = DEFAULT_SERENDIPITY_FREQUENCY
    negative_decay_days: int = DEFAULT_DECAY_DAYS
    rerank_throttle_minutes: int = DEFAULT_RERANK_THROTTLE_MINUTES
    enabled: bool = True
    engine_mode: EngineMode = EngineMode.CLASSIC

    def weight(self, feature):
        return self.weights.get(feature, feature.default_weight)

    def with_preset(self, name):
        if name not in PRESETS:
            raise ValueError(f"unknown preset: {name}")
        return replace(self, weights=dict(PRESETS[name]))

    def to_flat(self):
        flat = {
            "enabled": self.enabled,
            "serendipityFrequency": self.serendipity_frequency,
            "decayDays": self.negative_decay_days,
            "reRankThrottleMinutes": self.rerank_throttle_minutes,
            "engineMode": self.engine_mode.value,
        }
        for feature, value in self.weights.items():
            flat[WEIGHT_PREFIX + feature.value] = value
        return flat

    @classmethod
    def from_flat(cls, values):
        values = values or {}
        defaults = cls()

        weights = {}
        for key, raw in values.items():
            if not str(key).startswith(WEIGHT_PREFIX):
                continue
            try:
                feature = FeatureType(key[len(WEIGHT_PREFIX):])
                weights[feature] = float(raw)
            except (ValueError, TypeError):
                logger.warning("Ignoring bad weight setting %s=%r", key, raw)

        try:
            mode = EngineMode(values.get("engineMode", defaults.engine_mode.value))
        except ValueError:
            logger.warning("Unknown engine mode %r, using classic", values.get("engineMode"))
            mode = EngineMode.CLASSIC

        frequency = parse_int(values.get("serendipityFrequency"), defaults.serendipity_frequency)
        return cls(
            weights=weights,
            serendipity_frequency=max(1, frequency),
            negative_decay_days=max(1, parse_int(values.get("decayDays"), defaults.negative_decay_days)),
            rerank_throttle_minutes=max(0, parse_int(values.get("reRankThrottleMinutes"), defaults.rerank_throttle_minutes)),
            enabled=parse_bool(values.get("enabled"), defaults.enabled),
            engine_mode=mode,
        )


class SettingsStore:
    """Caches Settings loaded from a flat key-value backend and announces changes."""

    def __init__(self, backend, channel=None):
        self.backend = backend
        self.channel = channel
        self._lock = threading.Lock()
        self._settings = None

    def get(self):
        with self._lock:
            if self._settings is None:
                self._settings = Settings.from_flat(self.backend.load_settings())
            return self._settings

    def update(self, **changes):
        """Apply field changes (weights merge into the current overrides)."""
        current = self.get()
        weights = changes.pop("weights", None)
        if weights:
            merged = dict(current.weights)
            merged.update(weights)
            changes["weights"] = merged
        if "serendipity_frequency" in changes:
            changes["serendipity_frequency"] = max(1, int(changes["serendipity_frequency"]))
        return self._store(replace(current, **changes))

    def update_flat(self, values):
        """Merge flat key-value changes, as stored by the backend, into the current settings."""
        merged = self.get().to_flat()
        merged.update(values or {})
        return self._store(Settings.from_flat(merged))

    def set_weight(self, feature, value):
        return self.update(weights={feature: float(value)})

    def apply_preset(self, name):
        return self._store(self.get().with_preset(name))

    def reset(self):
        return self._store(Settings())

    def invalidate(self):
        with self._lock:
            self._settings = None

    def _store(self, settings):
        self.backend.save_settings(settings.to_flat())
        with self._lock:
            self._settings = settings
        logger.info("Recommendation settings updated (mode=%s)", settings.engine_mode.value)
        if self.channel is not None:
            self.channel.publish(SETTINGS_CHANGED, settings=settings)
        return settings
