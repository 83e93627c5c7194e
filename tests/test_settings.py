import pytest

from recommender.events import SETTINGS_CHANGED, EventChannel
from recommender.settings import PRESETS, Settings, SettingsStore
from recommender.store import InMemoryLibraryStore
from recommender.types import EngineMode, FeatureType


@pytest.fixture()
def backend():
    return InMemoryLibraryStore()


def test_defaults():
    settings = Settings()
    assert settings.enabled is True
    assert settings.serendipity_frequency == 10
    assert settings.engine_mode is EngineMode.CLASSIC
    assert settings.weight(FeatureType.AUTHOR_STARRED) == 0.8
    assert settings.weight(FeatureType.MUTED_AUTHOR) == -1.0


def test_flat_round_trip():
    settings = Settings(
        weights={FeatureType.RECENCY: 0.9},
        serendipity_frequency=4,
        negative_decay_days=30,
        rerank_throttle_minutes=1,
        enabled=False,
        engine_mode=EngineMode.HYBRID,
    )

    flat = settings.to_flat()

    assert flat["weight.recency"] == 0.9
    assert flat["engineMode"] == "hybrid"
    assert Settings.from_flat(flat) == settings


def test_from_flat_tolerates_bad_values():
    settings = Settings.from_flat(
        {
            "serendipityFrequency": "0",
            "engineMode": "psychic",
            "enabled": "false",
            "weight.unknownFeature": 1.0,
            "weight.recency": "abc",
        }
    )

    assert settings.serendipity_frequency == 1
    assert settings.engine_mode is EngineMode.CLASSIC
    assert settings.enabled is False
    assert settings.weights == {}


def test_presets():
    focused = Settings().with_preset("focused")
    assert focused.weight(FeatureType.AUTHOR_STARRED) == 1.0
    assert focused.weight(FeatureType.LIBRARY_SIMILARITY) == 0.6

    assert Settings().with_preset("balanced").weights == {}
    assert set(PRESETS) == {"focused", "balanced", "exploratory", "research", "defaults"}
    with pytest.raises(ValueError):
        Settings().with_preset("turbo")


def test_store_persists_and_announces_changes(backend):
    channel = EventChannel()
    seen = []
    channel.subscribe(SETTINGS_CHANGED, lambda settings: seen.append(settings))
    store = SettingsStore(backend, channel)

    store.update(serendipity_frequency=0, engine_mode=EngineMode.SEMANTIC)
    store.set_weight(FeatureType.RECENCY, 0.1)

    assert backend.settings["serendipityFrequency"] == 1
    assert backend.settings["engineMode"] == "semantic"
    assert backend.settings["weight.recency"] == 0.1
    assert len(seen) == 2
    assert seen[-1].weight(FeatureType.RECENCY) == 0.1

    fresh = SettingsStore(backend)
    assert fresh.get() == store.get()


def test_update_flat_and_reset(backend):
    store = SettingsStore(backend)

    store.update_flat({"weight.tagMatch": 0.25, "reRankThrottleMinutes": 0})
    assert store.get().weight(FeatureType.TAG_MATCH) == 0.25
    assert store.get().rerank_throttle_minutes == 0

    store.apply_preset("research")
    assert store.get().weight(FeatureType.TAG_MATCH) == 0.6
    assert store.get().weight(FeatureType.CITATION_OVERLAP) == 0.9

    assert store.reset() == Settings()
    assert backend.settings["engineMode"] == "classic"
