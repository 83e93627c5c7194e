import random
from datetime import datetime, timedelta, timezone

import pytest

from recommender.context import RecommenderContext
from recommender.engine import (
    NO_STRONG_SIGNALS,
    NOT_FOUND,
    RANKING_DISABLED,
    SERENDIPITY_EXPLANATION,
    effective_weight,
    explain,
    inject_serendipity,
)
from recommender.errors import StorageError, UnknownEventError
from recommender.events import RANKING_UPDATED
from recommender.features import MUTE_AUTHOR
from recommender.settings import Settings
from recommender.store import InMemoryLibraryStore
from recommender.types import EngineMode, FeatureType, RecommendationScore, TrainingAction
from helpers import CURRENT_YEAR, LIBRARY_ID, make_doc


def _add(ctx, *docs):
    for doc in docs:
        ctx.store.add_document(doc)


EINSTEIN = make_doc("einstein", "Relativity of simultaneity", ["Albert Einstein"], year=CURRENT_YEAR - 1)


def test_unknown_document_scores_zero(ctx):
    score = ctx.engine.score("missing")
    assert score.total == 0.0
    assert score.explanation == NOT_FOUND
    assert ctx.engine.score_breakdown("missing") is None


def test_starring_raises_the_score(ctx):
    _add(ctx, EINSTEIN, make_doc("other", "Unrelated work", ["Marie Curie"]))
    before = ctx.engine.score("einstein").total

    ctx.signals.record_starred(EINSTEIN)

    after = ctx.engine.score("einstein")
    assert after.total > before
    assert after.breakdown[FeatureType.AUTHOR_STARRED] > 0


def test_muted_author_always_lowers_the_score(ctx):
    _add(ctx, EINSTEIN)
    before = ctx.engine.score("einstein").total

    ctx.store.mute("Albert Einstein", MUTE_AUTHOR)
    muted = ctx.engine.score("einstein")
    assert muted.total == pytest.approx(before - 1.0)
    assert muted.breakdown[FeatureType.MUTED_AUTHOR] == pytest.approx(-1.0)

    # A positive weight on a penalty still subtracts
    ctx.settings.set_weight(FeatureType.MUTED_AUTHOR, 0.5)
    assert ctx.engine.score("einstein").breakdown[FeatureType.MUTED_AUTHOR] == pytest.approx(-0.5)


def test_disabled_ranking_keeps_input_order(ctx):
    _add(ctx, EINSTEIN, make_doc("b", "Second"))
    ctx.settings.update(enabled=False)

    ranked = ctx.engine.rank(["b", "einstein"])

    assert [r.document_id for r in ranked] == ["b", "einstein"]
    assert all(r.score.explanation == RANKING_DISABLED for r in ranked)


def _serendipity_library(ctx):
    # Fresh uncited papers outrank old, highly cited ones
    regular = [make_doc(f"new-{i}", f"Fresh result {i}", year=CURRENT_YEAR) for i in range(18)]
    classics = [make_doc(f"classic-{i}", f"Landmark paper {i}", year=2000, citation_count=1000) for i in range(2)]
    _add(ctx, *regular, *classics)
    return [d.id for d in regular + classics]


def test_serendipity_slot_is_injected_without_duplicates(ctx):
    ids = _serendipity_library(ctx)

    ranked = ctx.engine.rank(ids)

    ranked_ids = [r.document_id for r in ranked]
    assert len(ranked) == 20
    assert sorted(ranked_ids) == sorted(ids)
    slots = [r for r in ranked if r.is_serendipity_slot]
    assert 1 <= len(slots) <= 2
    assert ranked[10].is_serendipity_slot
    assert ranked[10].document_id.startswith("classic-")
    assert ranked[10].score.explanation == SERENDIPITY_EXPLANATION
    assert all(not r.is_serendipity_slot for r in ranked[:10])


def test_rank_orders_by_score_and_publishes(ctx, channel):
    seen = []
    channel.subscribe(RANKING_UPDATED, lambda **payload: seen.append(payload))
    _add(ctx, make_doc("old", "Old paper", year=CURRENT_YEAR - 10), make_doc("new", "New paper", year=CURRENT_YEAR))

    ranked = ctx.engine.rank(["old", "new"])

    assert [r.document_id for r in ranked] == ["new", "old"]
    assert seen == [{"count": 2}]


def test_rerank_is_throttled(ctx, timer):
    ids = _serendipity_library(ctx)

    first = ctx.engine.rank(ids)
    second = ctx.engine.rank(ids)
    assert all(a is b for a, b in zip(first, second))

    timer.advance(5 * 60 + 1)
    third = ctx.engine.rank(ids)
    assert [r.document_id for r in third[:10]] == [r.document_id for r in first[:10]]
    assert third[0] is not first[0]


def test_effective_weight_per_mode():
    classic = Settings()
    semantic = Settings(engine_mode=EngineMode.SEMANTIC)
    hybrid = Settings(engine_mode=EngineMode.HYBRID)

    assert effective_weight(FeatureType.LIBRARY_SIMILARITY, classic) == 0.0
    assert effective_weight(FeatureType.LIBRARY_SIMILARITY, semantic) == pytest.approx(1.2)
    assert effective_weight(FeatureType.RECENCY, semantic) == pytest.approx(0.15)
    assert effective_weight(FeatureType.MUTED_AUTHOR, semantic) == -1.0
    assert effective_weight(FeatureType.LIBRARY_SIMILARITY, hybrid) == pytest.approx(0.6)


def test_explanations_per_mode():
    breakdown = {
        FeatureType.AUTHOR_STARRED: 0.5,
        FeatureType.RECENCY: 0.2,
        FeatureType.VENUE_FREQUENCY: 0.05,
        FeatureType.LIBRARY_SIMILARITY: 0.35,
    }

    assert explain(breakdown, EngineMode.CLASSIC) == "Author Starred, Library Similarity"
    assert explain(breakdown, EngineMode.SEMANTIC) == "AI: Author Starred, Library Similarity"
    assert explain(breakdown, EngineMode.HYBRID) == "AI-enhanced, Author Starred, Library Similarity"
    assert explain({FeatureType.RECENCY: 0.05}, EngineMode.CLASSIC) == NO_STRONG_SIGNALS


def test_semantic_mode_uses_library_similarity(ctx):
    _add(
        ctx,
        make_doc("q1", "Quantum entanglement of photons", abstract="Entangled photon pairs"),
        make_doc("q2", "Quantum entanglement in qubits", abstract="Entangled qubits"),
        make_doc("q3", "Quantum error correction", abstract="Codes for quantum memory"),
    )
    assert ctx.engine.score("q1").breakdown[FeatureType.LIBRARY_SIMILARITY] == 0.0

    ctx.settings.update(engine_mode=EngineMode.SEMANTIC)
    assert ctx.engine.build_index() == 3

    score = ctx.engine.score("q1")
    assert score.breakdown[FeatureType.LIBRARY_SIMILARITY] > 0.1
    assert score.explanation.startswith("AI: ")


def test_score_breakdown_matches_score(ctx):
    _add(ctx, EINSTEIN)
    ctx.store.mute("einstein", MUTE_AUTHOR)

    breakdown = ctx.engine.score_breakdown("einstein")

    assert len(breakdown.components) == len(FeatureType)
    assert breakdown.components[0].feature is FeatureType.MUTED_AUTHOR
    magnitudes = [abs(c.contribution) for c in breakdown.components]
    assert magnitudes == sorted(magnitudes, reverse=True)
    assert breakdown.total == pytest.approx(ctx.engine.score("einstein").total)


def test_inject_serendipity_never_duplicates():
    scored = [(f"d{i}", RecommendationScore(total=5.0 - i)) for i in range(5)]
    pool = [scored[0], scored[4]]

    ranked = inject_serendipity(scored, pool, frequency=2)

    assert [r.document_id for r in ranked] == ["d1", "d2", "d0", "d3", "d4"]
    assert [r.is_serendipity_slot for r in ranked] == [False, False, True, False, False]


def test_inject_serendipity_fills_slot_with_top_ranked_pool_item():
    scored = [("star", RecommendationScore(total=10.0))]
    scored += [(f"d{i}", RecommendationScore(total=5.0 - i * 0.1)) for i in range(19)]

    ranked = inject_serendipity(scored, [scored[0]], frequency=10)

    ids = [r.document_id for r in ranked]
    assert len(ids) == 20
    assert len(set(ids)) == 20
    assert ids[0] == "d0"
    assert [i for i, r in enumerate(ranked) if r.is_serendipity_slot] == [10]
    assert ranked[10].document_id == "star"
    assert ranked[10].score.explanation == SERENDIPITY_EXPLANATION


def test_inject_serendipity_short_list_has_no_slot():
    scored = [(f"d{i}", RecommendationScore(total=1.0 - i * 0.1)) for i in range(3)]

    ranked = inject_serendipity(scored, [scored[2]], frequency=10)

    assert [r.document_id for r in ranked] == ["d0", "d1", "d2"]
    assert not any(r.is_serendipity_slot for r in ranked)


def test_for_you_skips_recent_reading(ctx):
    _add(
        ctx,
        make_doc("fresh", "Fresh", year=CURRENT_YEAR),
        make_doc("stale", "Stale", year=CURRENT_YEAR - 8),
        make_doc("read", "Read", year=CURRENT_YEAR),
    )

    recs = ctx.engine.for_you(["stale", "fresh", "read"], recently_read_ids=["read"], limit=5)

    assert [r.document_id for r in recs] == ["fresh", "stale"]
    assert ctx.engine.for_you(["stale", "fresh"], limit=1)[0].document_id == "fresh"


def test_for_you_from_library_uses_read_state(ctx):
    recent = datetime.now(timezone.utc) - timedelta(days=2)
    _add(
        ctx,
        make_doc("unread", "Unread", year=CURRENT_YEAR),
        make_doc("read-recent", "Read", is_read=True, date_modified=recent),
        make_doc("read-naive", "Read naive", is_read=True, date_modified=recent.replace(tzinfo=None)),
    )

    recs = ctx.engine.for_you_from_library(ctx.library_id)

    assert [r.document_id for r in recs] == ["unread"]


def test_train_and_undo_training_invalidate_scores(ctx):
    _add(ctx, EINSTEIN)
    base = ctx.engine.score("einstein").total
    event = ctx.signals.build_event(EINSTEIN, TrainingAction.MORE_LIKE_THIS)

    ctx.engine.train(event)
    boosted = ctx.engine.score("einstein")
    assert boosted.total > base
    assert boosted.to_dict()["topContributors"][0] == FeatureType.AUTHOR_COAUTHORSHIP.value

    ctx.engine.undo_training(event)
    assert ctx.engine.score("einstein").total == pytest.approx(base)

    with pytest.raises(UnknownEventError):
        ctx.engine.undo_training(event)
    assert ctx.engine.score("einstein").total == pytest.approx(base)


class UnwritableProfileStore(InMemoryLibraryStore):
    def save_profile(self, library_id, blob):
        raise StorageError("read-only volume")


def test_failed_profile_save_still_refreshes_scores(channel, timer):
    store = UnwritableProfileStore(channel=channel)
    ctx = RecommenderContext(store, LIBRARY_ID, channel=channel, rng=random.Random(7), timer=timer, current_year=CURRENT_YEAR)
    ctx.signals.flush_threshold = 1
    _add(ctx, EINSTEIN)
    before = ctx.engine.score("einstein").total

    with pytest.raises(StorageError):
        ctx.signals.record_starred(EINSTEIN)

    assert ctx.engine.score("einstein").total > before
