import logging

from flask import current_app

from app.services.library_store import SqliteLibraryStore
from recommender.context import RecommenderContext
from recommender.embeddings import WordVectorTable
from recommender.events import EventChannel
from recommender.types import Document
from utils.parsing import parse_bool, parse_datetime, parse_int, parse_list

logger = logging.getLogger(__name__)

EXTENSION_KEY = "recommender"


def init_recommender(app):
    """Build the store and recommender context for this app and keep them on app.extensions."""
    channel = EventChannel()
    store = SqliteLibraryStore(app.config["DATABASE"], channel=channel)
    word_vectors = WordVectorTable.load_if_present(app.config.get("WORD_VECTORS_PATH"))

    cache_ttl = app.config.get("RECOMMENDER_CACHE_TTL_SEC")
    context = RecommenderContext(
        store,
        app.config["LIBRARY_ID"],
        word_vectors=word_vectors,
        channel=channel,
        cache_ttl=cache_ttl,
    )
    app.extensions[EXTENSION_KEY] = context
    logger.info("Recommender ready for library %s (word vectors: %s)", app.config["LIBRARY_ID"], word_vectors is not None)
    return context


def get_context():
    return current_app.extensions[EXTENSION_KEY]


def document_from_payload(data, library_id=None):
    doc_id = str(data.get("id") or "").strip()
    title = str(data.get("title") or "").strip()
    if not doc_id or not title:
        raise ValueError("id and title are required")
    return Document(
        id=doc_id,
        title=title,
        authors=tuple(parse_list(data.get("authors"))),
        venue=(data.get("venue") or None),
        year=parse_int(data.get("year")),
        tags=tuple(parse_list(data.get("tags"))),
        citation_count=parse_int(data.get("citation_count"), 0),
        abstract=data.get("abstract") or None,
        primary_category=data.get("primary_category") or None,
        is_starred=parse_bool(data.get("is_starred")),
        is_read=parse_bool(data.get("is_read")),
        date_modified=parse_datetime(data.get("date_modified")),
        library_id=data.get("library_id") or library_id,
    )


def document_to_dict(document):
    return {
        "id": document.id,
        "title": document.title,
        "authors": list(document.authors),
        "venue": document.venue,
        "year": document.year,
        "tags": list(document.tags),
        "citation_count": document.citation_count,
        "abstract": document.abstract,
        "primary_category": document.primary_category,
        "is_starred": document.is_starred,
        "is_read": document.is_read,
        "date_modified": document.date_modified.isoformat() if document.date_modified else None,
        "library_id": document.library_id,
    }


def breakdown_to_dict(breakdown):
    return {
        "total": breakdown.total,
        "components": [
            {
                "feature": c.feature.value,
                "displayName": c.feature.display_name,
                "category": c.feature.category.value,
                "rawValue": c.raw_value,
                "weight": c.weight,
                "contribution": c.contribution,
            }
            for c in breakdown.components
        ],
    }


def profile_summary(profile):
    payload = profile.to_dict()
    payload.pop("trainingEvents", None)
    payload["coldStart"] = profile.is_cold_start
    payload["preferenceCount"] = profile.preference_count
    payload["eventCount"] = len(profile.training_events)
    return payload
