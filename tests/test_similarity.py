import pytest

from recommender.events import INDEX_REBUILT
from recommender.similarity import SimilarityService
from recommender.store import InMemoryLibraryStore
from helpers import LIBRARY_ID, make_doc

PAPERS = [
    ("q1", "Quantum entanglement of photons", "Entangled photon pairs and quantum measurement"),
    ("q2", "Quantum entanglement in superconducting qubits", "Measurement of entangled qubits"),
    ("q3", "Quantum error correction codes", "Stabilizer codes for qubits and quantum memory"),
    ("p1", "Medieval poetry and courtly love", "Troubadour verse in southern France"),
    ("p2", "Renaissance sonnets", "Petrarchan poetry and its imitators"),
]


def _fill(store, library_id=LIBRARY_ID):
    for doc_id, title, abstract in PAPERS:
        store.add_document(make_doc(doc_id, title, abstract=abstract, library_id=library_id))


@pytest.fixture()
def service(store, channel, timer):
    _fill(store)
    return SimilarityService(store, channel=channel, timer=timer)


def test_build_index_counts_documents_and_publishes(service, channel):
    seen = []
    channel.subscribe(INDEX_REBUILT, lambda **payload: seen.append(payload))

    assert service.build_index([LIBRARY_ID]) == 5

    assert service.has_index
    assert service.indexed_libraries() == [LIBRARY_ID]
    assert seen == [{"count": 5, "library_ids": [LIBRARY_ID]}]


def test_find_similar_excludes_the_query_document(service):
    service.build_index([LIBRARY_ID])

    results = service.find_similar("q1", top_k=3)

    ids = [doc_id for doc_id, _ in results]
    assert "q1" not in ids
    assert len(ids) == 3
    assert ids[0] == "q2"


def test_store_mutation_triggers_rebuild_on_next_query(service, store):
    service.build_index([LIBRARY_ID])
    store.add_document(make_doc("q4", "Quantum teleportation of entangled photons"))

    assert service.is_stale
    results = service.find_similar("q1", top_k=10)

    assert not service.is_stale
    assert service.indexed_count() == 6
    assert "q4" in [doc_id for doc_id, _ in results]


def test_concurrent_build_request_is_dropped(service):
    service._build_lock.acquire()
    try:
        assert service.build_index([LIBRARY_ID]) == 0
    finally:
        service._build_lock.release()
    assert not service.has_index
    assert service.build_index([LIBRARY_ID]) == 5


def test_similarity_score_is_bounded_and_cached(service, timer):
    assert service.similarity_score("q1") == 0.0

    service.build_index([LIBRARY_ID])
    score = service.similarity_score("q1")
    assert 0.0 < score <= 1.0
    assert service.similarity_score("q1") == score

    timer.advance(301)
    assert service.similarity_score("q1") == pytest.approx(score)


def test_search_by_text(service):
    service.build_index([LIBRARY_ID])

    results = service.search_by_text("entangled photons", top_k=2)

    assert results[0][0] == "q1"
    assert service.search_by_text("   ") == []


def test_group_recommendations_rank_by_library_centroid(store):
    group = "physics-group"
    for doc_id, title, abstract in PAPERS[:3]:
        store.add_document(make_doc(doc_id, title, abstract=abstract, library_id=group))
    store.add_document(make_doc("c-poetry", "Courtly love poetry of the troubadours"))
    store.add_document(make_doc("c-quantum", "Entangled qubits for quantum memory"))
    service = SimilarityService(store)

    ranked = service.group_recommendations(group, ["c-poetry", "c-quantum", "missing"], top_k=2)

    assert ranked == ["c-quantum", "c-poetry"]
    assert service.group_recommendations("empty-library", ["c-quantum"]) == []


def test_add_to_index_and_clear():
    store = InMemoryLibraryStore()
    _fill(store)
    service = SimilarityService(store)
    assert service.add_to_index("q1") is False

    service.build_index([LIBRARY_ID])
    store.add_document(make_doc("q5", "Quantum sensing with entangled photons"))

    assert service.add_to_index("q5") is True
    assert service.indexed_count() == 6
    assert service.add_to_index("q5") is False
    assert service.is_stale

    service.clear_index()
    assert not service.has_index
    assert service.find_similar("q1") == []


def test_preference_changes_keep_the_index_fresh(service, store):
    service.build_index([LIBRARY_ID])

    store.mute("Albert Einstein", "author")
    store.add_smart_search("quantum memory")

    assert not service.is_stale
    assert service.indexed_count() == 5


def test_mutation_during_rebuild_keeps_index_stale(service, store, monkeypatch):
    service.build_index([LIBRARY_ID])
    original = store.query_documents

    def query_then_add(parent_id):
        documents = original(parent_id)
        monkeypatch.setattr(store, "query_documents", original)
        store.add_document(make_doc("q6", "Quantum repeaters for entangled photon networks"))
        return documents

    monkeypatch.setattr(store, "query_documents", query_then_add)

    assert service.build_index([LIBRARY_ID]) == 5
    assert service.is_stale

    results = service.find_similar("q1", top_k=10)
    assert not service.is_stale
    assert service.indexed_count() == 6
    assert "q6" in [doc_id for doc_id, _ in results]
