"""Collaborator interfaces the engine consumes, plus an in-memory implementation."""

import threading
from typing import Dict, List, Optional, Protocol

from recommender.events import PREFERENCES_CHANGED, STORE_MUTATED
from recommender.types import Document


class LibraryStore(Protocol):
    def get_profile(self, library_id) -> Optional[str]: ...

    def save_profile(self, library_id, blob) -> None: ...

    def list_muted_items(self, mute_type) -> List[dict]: ...

    def list_smart_searches(self) -> List[dict]: ...

    def query_documents(self, parent_id) -> List[Document]: ...

    def get_document_detail(self, doc_id) -> Optional[Document]: ...


class SettingsBackend(Protocol):
    def load_settings(self) -> Dict[str, object]: ...

    def save_settings(self, values) -> None: ...


def muted_lookup(store):
    """Adapt list_muted_items to the set-returning lookup the extractor expects."""

    def lookup(mute_type):
        return {str(item["value"]).strip().lower() for item in store.list_muted_items(mute_type) or []}

    return lookup


class InMemoryLibraryStore:
    """Dict-backed store used by tests and by hosts without a database."""

    def __init__(self, channel=None):
        self.channel = channel
        self._lock = threading.Lock()
        self.documents = {}
        self.libraries = {}
        self.profiles = {}
        self.muted = []
        self.smart_searches = []
        self.settings = {}

    def add_document(self, document, library_id=None):
        library_id = library_id or document.library_id
        with self._lock:
            self.documents[document.id] = document
            if library_id is not None:
                members = self.libraries.setdefault(library_id, [])
                if document.id not in members:
                    members.append(document.id)
        self._mutated(document.id)

    def remove_document(self, doc_id):
        with self._lock:
            removed = self.documents.pop(doc_id, None) is not None
            for members in self.libraries.values():
                if doc_id in members:
                    members.remove(doc_id)
        if removed:
            self._mutated(doc_id)
        return removed

    def mute(self, value, mute_type):
        with self._lock:
            self.muted.append({"value": value, "type": mute_type})
        self._preferences_changed()

    def add_smart_search(self, query):
        with self._lock:
            self.smart_searches.append({"query": query})
        self._preferences_changed()

    def get_profile(self, library_id):
        return self.profiles.get(library_id)

    def save_profile(self, library_id, blob):
        with self._lock:
            self.profiles[library_id] = blob

    def list_muted_items(self, mute_type):
        return [item for item in self.muted if item["type"] == mute_type]

    def list_smart_searches(self):
        return list(self.smart_searches)

    def query_documents(self, parent_id):
        # None means every document the store knows about
        if parent_id is None:
            return list(self.documents.values())
        return [self.documents[i] for i in self.libraries.get(parent_id, []) if i in self.documents]

    def get_document_detail(self, doc_id):
        return self.documents.get(doc_id)

    def load_settings(self):
        return dict(self.settings)

    def save_settings(self, values):
        with self._lock:
            self.settings = dict(values)

    def _mutated(self, doc_id):
        if self.channel is not None:
            self.channel.publish(STORE_MUTATED, document_id=doc_id)

    def _preferences_changed(self):
        if self.channel is not None:
            self.channel.publish(PREFERENCES_CHANGED)
