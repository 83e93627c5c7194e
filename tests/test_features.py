import math

import pytest

from recommender.features import (
    MUTE_AUTHOR,
    MUTE_CATEGORY,
    MUTE_VENUE,
    build_library_context,
    citation_velocity_score,
    extract_features,
    library_similarity_score,
    recency_score,
    smart_search_score,
)
from recommender.profile import Profile, family_name
from recommender.types import FeatureType
from helpers import CURRENT_YEAR, make_doc


def _muted(authors=(), venues=(), categories=()):
    table = {MUTE_AUTHOR: set(authors), MUTE_VENUE: set(venues), MUTE_CATEGORY: set(categories)}
    return lambda mute_type: table.get(mute_type, set())


def test_family_name_handles_both_orders():
    assert family_name("Einstein, Albert") == "einstein"
    assert family_name("Albert Einstein") == "einstein"
    assert family_name("  ") == ""


def test_extract_features_is_total_and_neutral_without_profile():
    doc = make_doc("d1", "Quantum entanglement in practice", ["Alice Smith"], year=CURRENT_YEAR)
    features = extract_features(doc, None, [], current_year=CURRENT_YEAR)

    assert set(features) == set(FeatureType)
    assert features[FeatureType.AUTHOR_STARRED] == 0.0
    assert features[FeatureType.COLLECTION_MATCH] == 0.0
    assert features[FeatureType.CITATION_OVERLAP] == 0.0
    assert features[FeatureType.LIBRARY_SIMILARITY] == 0.0
    assert features[FeatureType.RECENCY] == pytest.approx(1.0)


def test_muted_author_is_a_hard_veto():
    doc = make_doc("d1", "Relativity", ["Albert Einstein"])
    profile = Profile(author_affinities={"einstein": 3.0})

    features = extract_features(doc, profile, [], muted_lookup=_muted(authors={"albert einstein"}), current_year=CURRENT_YEAR)

    assert features[FeatureType.MUTED_AUTHOR] == -1.0
    assert features[FeatureType.AUTHOR_STARRED] == pytest.approx(math.tanh(3.0))


def test_muted_venue_and_category_match_case_insensitively():
    doc = make_doc("d1", "Paper", venue="NeurIPS", tags=("Machine Learning",), primary_category="cs.LG")
    lookup = _muted(venues={"neurips"}, categories={"cs.lg"})

    features = extract_features(doc, None, [], muted_lookup=lookup, current_year=CURRENT_YEAR)

    assert features[FeatureType.MUTED_VENUE] == -1.0
    assert features[FeatureType.MUTED_CATEGORY] == -1.0
    assert features[FeatureType.MUTED_AUTHOR] == 0.0


def test_affinity_features_follow_profile_sign():
    doc = make_doc("d1", "Paper", ["Niels Bohr", "Albert Einstein"], venue="Nature")
    profile = Profile(author_affinities={"bohr": -1.0, "einstein": 0.5}, venue_affinities={"nature": 2.0})

    features = extract_features(doc, profile, [], current_year=CURRENT_YEAR)

    assert features[FeatureType.KEEP_RATE_AUTHOR] == pytest.approx(math.tanh(0.5))
    assert features[FeatureType.PDF_DOWNLOAD_AUTHOR] == pytest.approx(math.tanh(0.5) * 0.8)
    assert features[FeatureType.DISMISS_RATE_AUTHOR] == pytest.approx(math.tanh(-1.0))
    assert features[FeatureType.KEEP_RATE_VENUE] == pytest.approx(math.tanh(2.0))


def test_topic_features_use_title_keywords_and_tags():
    doc = make_doc("d1", "Graph networks", tags=("Physics", "math"))
    profile = Profile(topic_affinities={"graph": 1.0, "networks": -0.5, "physics": 2.0})

    features = extract_features(doc, profile, [], current_year=CURRENT_YEAR)

    assert features[FeatureType.COLLECTION_MATCH] == pytest.approx(math.tanh(0.5 / 2))
    assert features[FeatureType.READING_TIME_TOPIC] == pytest.approx(math.tanh(1.0 / 2))
    assert features[FeatureType.TAG_MATCH] == pytest.approx(math.tanh(2.0 / 2))


def test_recency_and_velocity_edge_cases():
    assert recency_score(make_doc("a", year=CURRENT_YEAR - 2), CURRENT_YEAR) == pytest.approx(math.exp(-1.0))
    assert recency_score(make_doc("b", year=CURRENT_YEAR + 3), CURRENT_YEAR) == pytest.approx(1.0)
    assert recency_score(make_doc("c"), CURRENT_YEAR) == 0.5

    cited = make_doc("d", year=CURRENT_YEAR - 4, citation_count=100)
    assert citation_velocity_score(cited, CURRENT_YEAR) == pytest.approx(math.tanh(2.5))
    assert citation_velocity_score(make_doc("e", citation_count=100), CURRENT_YEAR) == 0.0
    assert citation_velocity_score(make_doc("f", year=CURRENT_YEAR), CURRENT_YEAR) == 0.0


def test_library_context_features():
    library = [
        make_doc(f"l{i}", "Paper", ["Albert Einstein"] if i % 2 else ["Niels Bohr"], venue="NeurIPS")
        for i in range(5)
    ]
    context = build_library_context(library)
    candidate = make_doc("c", "Paper", ["A. Einstein", "Marie Curie"], venue="neurips")

    features = extract_features(candidate, None, context, current_year=CURRENT_YEAR)

    assert context.size == 5
    assert features[FeatureType.AUTHOR_COAUTHORSHIP] == pytest.approx(0.5)
    assert features[FeatureType.VENUE_FREQUENCY] == pytest.approx(math.tanh(1.0))


def test_empty_library_gives_zero_content_features():
    candidate = make_doc("c", "Paper", ["Marie Curie"], venue="Nature")
    features = extract_features(candidate, None, [], current_year=CURRENT_YEAR)
    assert features[FeatureType.AUTHOR_COAUTHORSHIP] == 0.0
    assert features[FeatureType.VENUE_FREQUENCY] == 0.0


def test_smart_search_match():
    searches = [{"query": "graph neural networks"}, {"query": "protein folding"}]
    hit = make_doc("a", "Scalable graph neural networks for molecules")
    miss = make_doc("b", "Medieval poetry")

    assert smart_search_score(hit, searches) == pytest.approx(1.0)
    assert smart_search_score(miss, searches) == 0.0
    assert smart_search_score(hit, []) == 0.0


def test_library_similarity_score_aggregation():
    assert library_similarity_score([]) == 0.0
    expected = 0.8 * 0.5 + 0.2 * 0.5 + min(0.2, math.tanh(1 / 5.0))
    assert library_similarity_score([0.5]) == pytest.approx(expected)
    assert library_similarity_score([0.9, 0.8, 0.7, 0.9, 0.95]) == 1.0
