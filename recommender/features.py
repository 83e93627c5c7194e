"""Per-document feature extraction for recommendation scoring.

Each feature is a raw float, nominally in [-1, 1]. Penalty features are
negative. Nothing here raises for missing data: an absent profile, year or
keyword set simply yields the neutral value for that feature.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Counter as CounterType, FrozenSet

from recommender.profile import family_name
from recommender.types import FeatureType
from utils.text import extract_keywords

MUTE_AUTHOR = "author"
MUTE_VENUE = "venue"
MUTE_CATEGORY = "category"


@dataclass(frozen=True)
class LibraryContext:
    author_names: FrozenSet[str] = frozenset()
    venue_counts: CounterType = field(default_factory=Counter)
    size: int = 0


def build_library_context(documents):
    """Precompute the library author set and venue counts once per pass."""
    authors = set()
    venues = Counter()
    size = 0
    for doc in documents or []:
        size += 1
        for author in doc.authors:
            name = family_name(author)
            if name:
                authors.add(name)
        if doc.venue:
            venues[doc.venue.strip().lower()] += 1
    return LibraryContext(author_names=frozenset(authors), venue_counts=venues, size=size)


def _author_keys(document):
    return [name for name in (family_name(a) for a in document.authors) if name]


def _age_years(year, current_year):
    if not year or year <= 0:
        return None
    return max(0, current_year - year)


# Explicit signals

def author_starred_score(document, profile):
    if profile is None:
        return 0.0
    best = 0.0
    for name in _author_keys(document):
        best = max(best, profile.author_affinity(name))
    return math.tanh(best)


def collection_match_score(document, profile):
    if profile is None:
        return 0.0
    keywords = extract_keywords(document.title)
    if not keywords:
        return 0.0
    total = sum(profile.topic_affinity(k) for k in keywords)
    return math.tanh(total / max(1, len(keywords)))


def tag_match_score(document, profile):
    if profile is None or not document.tags:
        return 0.0
    total = sum(profile.topic_affinity(tag) for tag in document.tags)
    return math.tanh(total / len(document.tags))


def muted_author_penalty(document, muted_authors):
    """Hard veto: -1.0 when any author (full or family name) is muted."""
    if not muted_authors:
        return 0.0
    for author in document.authors:
        full = (author or "").strip().lower()
        if full in muted_authors or family_name(author) in muted_authors:
            return -1.0
    return 0.0


def muted_venue_penalty(document, muted_venues):
    if document.venue and document.venue.strip().lower() in muted_venues:
        return -1.0
    return 0.0


def muted_category_penalty(document, muted_categories):
    if not muted_categories:
        return 0.0
    categories = list(document.tags)
    if document.primary_category:
        categories.append(document.primary_category)
    for category in categories:
        if category.strip().lower() in muted_categories:
            return -1.0
    return 0.0


# Behavioral signals

def keep_rate_author_score(document, profile):
    if profile is None:
        return 0.0
    best = 0.0
    for name in _author_keys(document):
        affinity = profile.author_affinity(name)
        if affinity > 0:
            best = max(best, affinity)
    return math.tanh(best)


def keep_rate_venue_score(document, profile):
    if profile is None or not document.venue:
        return 0.0
    affinity = profile.venue_affinity(document.venue.strip())
    return math.tanh(affinity) if affinity > 0 else 0.0


def dismiss_rate_author_penalty(document, profile):
    if profile is None:
        return 0.0
    worst = 0.0
    for name in _author_keys(document):
        affinity = profile.author_affinity(name)
        if affinity < 0:
            worst = min(worst, affinity)
    return math.tanh(worst) if worst < 0 else 0.0


def reading_time_topic_score(document, profile):
    if profile is None:
        return 0.0
    keywords = extract_keywords(document.title)
    if not keywords:
        return 0.0
    total = sum(a for a in (profile.topic_affinity(k) for k in keywords) if a > 0)
    return math.tanh(total / len(keywords))


def pdf_download_author_score(document, profile):
    return keep_rate_author_score(document, profile) * 0.8


# Content signals

def author_coauthorship_score(document, library):
    authors = _author_keys(document)
    if not authors or not library.author_names:
        return 0.0
    matches = sum(1 for name in authors if name in library.author_names)
    return matches / len(authors)


def venue_frequency_score(document, library):
    if not document.venue:
        return 0.0
    count = library.venue_counts.get(document.venue.strip().lower(), 0)
    return math.tanh(count / 5.0)


def recency_score(document, current_year):
    age = _age_years(document.year, current_year)
    if age is None:
        return 0.5
    return math.exp(-age / 2.0)


def citation_velocity_score(document, current_year):
    if not document.citation_count or document.citation_count <= 0:
        return 0.0
    age = _age_years(document.year, current_year)
    if age is None:
        return 0.0
    velocity = document.citation_count / max(1, age)
    return math.tanh(velocity / 10.0)


def smart_search_score(document, smart_searches):
    """Best share of one saved query's keywords present in the document."""
    if not smart_searches:
        return 0.0
    text = " ".join([document.title or "", document.abstract or "", " ".join(document.tags)])
    doc_keywords = set(extract_keywords(text))
    if not doc_keywords:
        return 0.0
    best = 0.0
    for search in smart_searches:
        query = search.get("query") if isinstance(search, dict) else search
        query_keywords = set(extract_keywords(query))
        if not query_keywords:
            continue
        best = max(best, len(query_keywords & doc_keywords) / len(query_keywords))
    return best


def library_similarity_score(similarities):
    """Aggregate top-K ANN similarities into one score in [0, 1]."""
    values = [float(s) for s in similarities or []]
    if not values:
        return 0.0
    count = len(values)
    best = max(values)
    mean = sum(values) / count
    bonus = min(0.2, math.tanh(count / 5.0))
    return max(0.0, min(1.0, 0.8 * best + 0.2 * mean + bonus))


def _muted_set(muted_lookup, mute_type):
    if muted_lookup is None:
        return frozenset()
    return frozenset(str(v).strip().lower() for v in muted_lookup(mute_type) or ())


def extract_features(document, profile, library, muted_lookup=None, smart_searches=None, current_year=None):
    """Compute every FeatureType for one candidate document.

    `library` may be a LibraryContext or a plain list of library documents.
    librarySimilarity is always 0.0 here, the engine fills it in after the
    embedding lookup.
    """
    if not isinstance(library, LibraryContext):
        library = build_library_context(library)
    if current_year is None:
        current_year = date.today().year

    return {
        FeatureType.AUTHOR_STARRED: author_starred_score(document, profile),
        FeatureType.COLLECTION_MATCH: collection_match_score(document, profile),
        FeatureType.TAG_MATCH: tag_match_score(document, profile),
        FeatureType.MUTED_AUTHOR: muted_author_penalty(document, _muted_set(muted_lookup, MUTE_AUTHOR)),
        FeatureType.MUTED_CATEGORY: muted_category_penalty(document, _muted_set(muted_lookup, MUTE_CATEGORY)),
        FeatureType.MUTED_VENUE: muted_venue_penalty(document, _muted_set(muted_lookup, MUTE_VENUE)),
        FeatureType.KEEP_RATE_AUTHOR: keep_rate_author_score(document, profile),
        FeatureType.KEEP_RATE_VENUE: keep_rate_venue_score(document, profile),
        FeatureType.DISMISS_RATE_AUTHOR: dismiss_rate_author_penalty(document, profile),
        FeatureType.READING_TIME_TOPIC: reading_time_topic_score(document, profile),
        FeatureType.PDF_DOWNLOAD_AUTHOR: pdf_download_author_score(document, profile),
        # No citation graph is available to the core
        FeatureType.CITATION_OVERLAP: 0.0,
        FeatureType.AUTHOR_COAUTHORSHIP: author_coauthorship_score(document, library),
        FeatureType.VENUE_FREQUENCY: venue_frequency_score(document, library),
        FeatureType.RECENCY: recency_score(document, current_year),
        FeatureType.FIELD_CITATION_VELOCITY: citation_velocity_score(document, current_year),
        FeatureType.SMART_SEARCH_MATCH: smart_search_score(document, smart_searches),
        FeatureType.LIBRARY_SIMILARITY: 0.0,
    }
