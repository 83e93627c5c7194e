"""Shared value types for the recommendation engine."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple


class FeatureCategory(Enum):
    EXPLICIT = "explicit"
    BEHAVIORAL = "behavioral"
    CONTENT = "content"


class FeatureType(Enum):
    # Explicit signals
    AUTHOR_STARRED = "authorStarred"
    COLLECTION_MATCH = "collectionMatch"
    TAG_MATCH = "tagMatch"
    MUTED_AUTHOR = "mutedAuthor"
    MUTED_CATEGORY = "mutedCategory"
    MUTED_VENUE = "mutedVenue"

    # Behavioral signals
    KEEP_RATE_AUTHOR = "keepRateAuthor"
    KEEP_RATE_VENUE = "keepRateVenue"
    DISMISS_RATE_AUTHOR = "dismissRateAuthor"
    READING_TIME_TOPIC = "readingTimeTopic"
    PDF_DOWNLOAD_AUTHOR = "pdfDownloadAuthor"

    # Content signals
    CITATION_OVERLAP = "citationOverlap"
    AUTHOR_COAUTHORSHIP = "authorCoauthorship"
    VENUE_FREQUENCY = "venueFrequency"
    RECENCY = "recency"
    FIELD_CITATION_VELOCITY = "fieldCitationVelocity"
    SMART_SEARCH_MATCH = "smartSearchMatch"
    LIBRARY_SIMILARITY = "librarySimilarity"

    @property
    def display_name(self):
        return _FEATURE_INFO[self][0]

    @property
    def default_weight(self):
        return _FEATURE_INFO[self][1]

    @property
    def category(self):
        return _FEATURE_INFO[self][2]

    @property
    def description(self):
        return _FEATURE_INFO[self][3]

    @property
    def is_negative(self):
        """Penalty features keep their weight in every engine mode."""
        return self in _NEGATIVE_FEATURES


_E = FeatureCategory.EXPLICIT
_B = FeatureCategory.BEHAVIORAL
_C = FeatureCategory.CONTENT

# feature -> (display name, default weight, category, description)
_FEATURE_INFO = {
    FeatureType.AUTHOR_STARRED: ("Author Starred", 0.8, _E, "Documents by authors whose work you've starred"),
    FeatureType.COLLECTION_MATCH: ("Collection Match", 0.7, _E, "Documents matching collections you've curated"),
    FeatureType.TAG_MATCH: ("Tag Match", 0.6, _E, "Documents with tags you frequently apply"),
    FeatureType.MUTED_AUTHOR: ("Muted Author", -1.0, _E, "Documents by authors you've muted"),
    FeatureType.MUTED_CATEGORY: ("Muted Category", -0.8, _E, "Documents in categories you've muted"),
    FeatureType.MUTED_VENUE: ("Muted Venue", -0.6, _E, "Documents from venues you've muted"),
    FeatureType.KEEP_RATE_AUTHOR: ("Author Keep Rate", 0.5, _B, "How often you keep documents by this author"),
    FeatureType.KEEP_RATE_VENUE: ("Venue Keep Rate", 0.3, _B, "How often you keep documents from this venue"),
    FeatureType.DISMISS_RATE_AUTHOR: ("Author Dismiss Rate", -0.4, _B, "How often you dismiss documents by this author"),
    FeatureType.READING_TIME_TOPIC: ("Reading Time (Topic)", 0.4, _B, "Topics you spend time reading about"),
    FeatureType.PDF_DOWNLOAD_AUTHOR: ("PDF Downloads (Author)", 0.5, _B, "Authors whose PDFs you download"),
    FeatureType.CITATION_OVERLAP: ("Citation Overlap", 0.4, _C, "Documents connected to your library through citations"),
    FeatureType.AUTHOR_COAUTHORSHIP: ("Co-author Network", 0.3, _C, "Authors who appear in your library"),
    FeatureType.VENUE_FREQUENCY: ("Venue Frequency", 0.2, _C, "Venues represented in your library"),
    FeatureType.RECENCY: ("Recency", 0.3, _C, "Recently published documents"),
    FeatureType.FIELD_CITATION_VELOCITY: ("Citation Velocity", 0.2, _C, "Highly-cited documents relative to their age"),
    FeatureType.SMART_SEARCH_MATCH: ("Smart Search Match", 0.6, _C, "Documents matching your saved searches"),
    FeatureType.LIBRARY_SIMILARITY: ("Library Similarity", 0.6, _C, "Documents semantically similar to your library"),
}

_NEGATIVE_FEATURES = frozenset({
    FeatureType.MUTED_AUTHOR,
    FeatureType.MUTED_CATEGORY,
    FeatureType.MUTED_VENUE,
    FeatureType.DISMISS_RATE_AUTHOR,
})


class TrainingAction(Enum):
    KEPT = "kept"
    DISMISSED = "dismissed"
    STARRED = "starred"
    UNSTARRED = "unstarred"
    READ = "read"
    PDF_DOWNLOADED = "pdfDownloaded"
    MORE_LIKE_THIS = "moreLikeThis"
    LESS_LIKE_THIS = "lessLikeThis"
    ADDED_TO_COLLECTION = "addedToCollection"

    @property
    def multiplier(self):
        return _ACTION_MULTIPLIERS[self]

    @property
    def is_positive(self):
        return self.multiplier > 0

    @property
    def display_name(self):
        return _ACTION_NAMES[self]


_ACTION_MULTIPLIERS = {
    TrainingAction.KEPT: 1.0,
    TrainingAction.DISMISSED: -1.0,
    TrainingAction.STARRED: 2.0,
    TrainingAction.UNSTARRED: -1.0,
    TrainingAction.READ: 0.5,
    TrainingAction.PDF_DOWNLOADED: 0.5,
    TrainingAction.MORE_LIKE_THIS: 2.5,
    TrainingAction.LESS_LIKE_THIS: -2.5,
    TrainingAction.ADDED_TO_COLLECTION: 1.5,
}

_ACTION_NAMES = {
    TrainingAction.KEPT: "Kept",
    TrainingAction.DISMISSED: "Dismissed",
    TrainingAction.STARRED: "Starred",
    TrainingAction.UNSTARRED: "Unstarred",
    TrainingAction.READ: "Read",
    TrainingAction.PDF_DOWNLOADED: "PDF Downloaded",
    TrainingAction.MORE_LIKE_THIS: "More Like This",
    TrainingAction.LESS_LIKE_THIS: "Less Like This",
    TrainingAction.ADDED_TO_COLLECTION: "Added to Collection",
}


class EngineMode(Enum):
    CLASSIC = "classic"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"

    @property
    def requires_embeddings(self):
        return self is not EngineMode.CLASSIC


def utcnow():
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Document:
    id: str
    title: str = ""
    authors: Tuple[str, ...] = ()
    venue: Optional[str] = None
    year: Optional[int] = None
    tags: Tuple[str, ...] = ()
    citation_count: int = 0
    abstract: Optional[str] = None
    primary_category: Optional[str] = None
    is_starred: bool = False
    is_read: bool = False
    date_modified: Optional[datetime] = None
    library_id: Optional[str] = None

    @property
    def author_string(self):
        return ", ".join(self.authors)


@dataclass(frozen=True)
class TrainingEvent:
    action: TrainingAction
    document_id: str
    deltas: Dict[str, float]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)
    document_title: str = ""
    document_authors: str = ""

    @property
    def summary(self):
        return f"{self.action.display_name}: {self.document_title}"

    def to_dict(self):
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "documentId": self.document_id,
            "documentTitle": self.document_title,
            "documentAuthors": self.document_authors,
            "deltas": dict(self.deltas),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            action=TrainingAction(data["action"]),
            document_id=data["documentId"],
            document_title=data.get("documentTitle", ""),
            document_authors=data.get("documentAuthors", ""),
            deltas={k: float(v) for k, v in (data.get("deltas") or {}).items()},
        )


@dataclass
class RecommendationScore:
    total: float
    breakdown: Dict[FeatureType, float] = field(default_factory=dict)
    explanation: str = ""
    is_serendipity_slot: bool = False
    features: Dict[FeatureType, float] = field(default_factory=dict)

    @property
    def top_contributors(self):
        positive = [(f, v) for f, v in self.breakdown.items() if v > 0]
        return sorted(positive, key=lambda kv: kv[1], reverse=True)

    @property
    def negative_contributors(self):
        negative = [(f, v) for f, v in self.breakdown.items() if v < 0]
        return sorted(negative, key=lambda kv: kv[1])

    def to_dict(self):
        return {
            "total": self.total,
            "breakdown": {f.value: v for f, v in self.breakdown.items()},
            "explanation": self.explanation,
            "isSerendipitySlot": self.is_serendipity_slot,
            "topContributors": [f.value for f, _ in self.top_contributors[:3]],
            "penalties": [f.value for f, _ in self.negative_contributors],
        }


@dataclass
class RankedDocument:
    document_id: str
    score: RecommendationScore
    is_serendipity_slot: bool = False

    def to_dict(self):
        payload = self.score.to_dict()
        payload["id"] = self.document_id
        payload["isSerendipitySlot"] = self.is_serendipity_slot
        return payload


def weighted_contribution(feature, raw_value, weight):
    """raw x weight, except penalty features always pull the total down."""
    if feature.is_negative:
        return -abs(raw_value * weight)
    return raw_value * weight


@dataclass(frozen=True)
class ScoreComponent:
    feature: FeatureType
    raw_value: float
    weight: float

    @property
    def contribution(self):
        return weighted_contribution(self.feature, self.raw_value, self.weight)


@dataclass
class ScoreBreakdown:
    total: float
    components: List[ScoreComponent] = field(default_factory=list)


@dataclass(frozen=True)
class ForYouRecommendation:
    document_id: str
    score: float
    reason: str
