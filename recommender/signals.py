"""Turns user actions on documents into training events."""

import logging
import threading
import time

from recommender.constants import (
    AUTHOR_DELTA,
    CATEGORY_DELTA,
    DEDUP_WINDOW_SECONDS,
    FLUSH_THRESHOLD,
    MAX_EVENT_KEYWORDS,
    TOPIC_DELTA,
    VENUE_DELTA,
)
from recommender.events import TRAINING_EVENT_RECORDED
from recommender.profile import family_name
from recommender.types import TrainingAction, TrainingEvent
from utils.text import top_keywords

logger = logging.getLogger(__name__)


def event_deltas(document):
    """Base deltas for every feature key a document touches."""
    deltas = {}
    for author in document.authors:
        name = family_name(author)
        if name:
            deltas[f"author:{name}"] = AUTHOR_DELTA

    venue = (document.venue or "").strip().lower()
    if venue:
        deltas[f"venue:{venue}"] = VENUE_DELTA

    text = " ".join([document.title or "", document.abstract or ""])
    for keyword in top_keywords(text, MAX_EVENT_KEYWORDS):
        deltas[f"topic:{keyword}"] = TOPIC_DELTA

    categories = list(document.tags)
    if document.primary_category:
        categories.append(document.primary_category)
    for category in categories:
        key = category.strip().lower()
        if key:
            deltas[f"category:{key}"] = CATEGORY_DELTA
    return deltas


class SignalCollector:
    """Records actions for one library and persists the profile in batches.

    Events are applied to the in-memory profile immediately. The profile is
    written back once `flush_threshold` events are pending, on `flush()`, and
    right after an undo.
    """

    def __init__(
        self,
        learner,
        library_id,
        channel=None,
        flush_threshold=FLUSH_THRESHOLD,
        dedup_window=DEDUP_WINDOW_SECONDS,
        timer=time.monotonic,
    ):
        self.learner = learner
        self.profiles = learner.profiles
        self.library_id = library_id
        self.channel = channel
        self.flush_threshold = flush_threshold
        self.dedup_window = dedup_window
        self.timer = timer
        self._lock = threading.Lock()
        self._pending = 0
        self._last_seen = {}

    @property
    def pending_count(self):
        return self._pending

    def build_event(self, document, action):
        return TrainingEvent(
            action=action,
            document_id=document.id,
            deltas=event_deltas(document),
            document_title=document.title or "",
            document_authors=document.author_string,
        )

    def record(self, document, action):
        """Apply one action. Returns the event, or None for a duplicate inside the dedup window."""
        if isinstance(action, str):
            action = TrainingAction(action)
        now = self.timer()
        key = (document.id, action)
        with self._lock:
            self._evict_seen(now)
            last = self._last_seen.get(key)
            if last is not None and now - last < self.dedup_window:
                logger.debug("Dropping duplicate %s on %s", action.value, document.id)
                return None
            self._last_seen[key] = now

        event = self.build_event(document, action)
        self.learner.train(self.library_id, event)
        logger.info("Recorded %s on %s", action.value, document.id)

        with self._lock:
            self._pending += 1
            should_flush = self._pending >= self.flush_threshold
        try:
            if should_flush:
                self.flush()
        finally:
            # in-memory profile already changed
            if self.channel is not None:
                self.channel.publish(TRAINING_EVENT_RECORDED, event=event, library_id=self.library_id)
        return event

    def _evict_seen(self, now):
        expired = [key for key, seen in self._last_seen.items() if now - seen >= self.dedup_window]
        for key in expired:
            del self._last_seen[key]

    def record_kept(self, document):
        return self.record(document, TrainingAction.KEPT)

    def record_dismissed(self, document):
        return self.record(document, TrainingAction.DISMISSED)

    def record_starred(self, document):
        return self.record(document, TrainingAction.STARRED)

    def record_unstarred(self, document):
        return self.record(document, TrainingAction.UNSTARRED)

    def record_read(self, document):
        return self.record(document, TrainingAction.READ)

    def record_pdf_download(self, document):
        return self.record(document, TrainingAction.PDF_DOWNLOADED)

    def record_more_like_this(self, document):
        return self.record(document, TrainingAction.MORE_LIKE_THIS)

    def record_less_like_this(self, document):
        return self.record(document, TrainingAction.LESS_LIKE_THIS)

    def record_added_to_collection(self, document):
        return self.record(document, TrainingAction.ADDED_TO_COLLECTION)

    def flush(self):
        """Persist the profile. StorageError from the store reaches the caller."""
        with self._lock:
            pending = self._pending
        self.profiles.save(self.library_id)
        with self._lock:
            self._pending = max(0, self._pending - pending)
        logger.debug("Flushed %d training events for library %s", pending, self.library_id)
        return pending

    def undo(self, event_id):
        event = self.learner.undo_by_id(self.library_id, event_id)
        logger.info("Undid %s on %s", event.action.value, event.document_id)
        try:
            self.flush()
        finally:
            if self.channel is not None:
                self.channel.publish(TRAINING_EVENT_RECORDED, event=event, library_id=self.library_id, undone=True)
        return event

    def recent_events(self, limit=20):
        with self.profiles.lock:
            events = list(self.profiles.get(self.library_id).training_events)
        return list(reversed(events))[:limit]
