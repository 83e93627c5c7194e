"""SQLite-backed implementation of the recommender's store interfaces."""

import logging
import sqlite3
from contextlib import closing
from dataclasses import replace

import pandas as pd

from app.db import connect
from app.repos import documents as documents_repo
from app.repos import muted as muted_repo
from app.repos import profiles as profiles_repo
from recommender.errors import StorageError
from recommender.events import PREFERENCES_CHANGED, STORE_MUTATED
from recommender.types import Document
from utils.parsing import parse_bool, parse_datetime, parse_int, parse_list

logger = logging.getLogger(__name__)


def _text(value):
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def document_from_row(row):
    return Document(
        id=str(row["id"]),
        title=_text(row["title"]) or "",
        authors=tuple(parse_list(row["authors"])),
        venue=_text(row["venue"]),
        year=parse_int(row["year"]),
        tags=tuple(parse_list(row["tags"])),
        citation_count=parse_int(row["citation_count"], 0),
        abstract=_text(row["abstract"]),
        primary_category=_text(row["primary_category"]),
        is_starred=parse_bool(row["is_starred"]),
        is_read=parse_bool(row["is_read"]),
        date_modified=parse_datetime(_text(row["date_modified"])),
        library_id=_text(row["library_id"]),
    )


class SqliteLibraryStore:
    """Opens a short-lived connection per call so it is safe outside a request."""

    def __init__(self, db_path, channel=None):
        self.db_path = db_path
        self.channel = channel

    def _run(self, fn, *args):
        try:
            with closing(connect(self.db_path)) as conn:
                return fn(*args, db=conn)
        except sqlite3.Error as exc:
            logger.error("Library store failure in %s: %s", getattr(fn, "__name__", fn), exc)
            raise StorageError(str(exc)) from exc

    # Profiles

    def get_profile(self, library_id):
        return self._run(profiles_repo.get_blob, library_id)

    def save_profile(self, library_id, blob):
        self._run(profiles_repo.save_blob, library_id, blob)

    # Settings

    def load_settings(self):
        return self._run(profiles_repo.load_settings)

    def save_settings(self, values):
        self._run(profiles_repo.save_settings, values)

    # Muted items and saved searches

    def list_muted_items(self, mute_type):
        return self._run(muted_repo.list_by_type, mute_type)

    def add_muted(self, value, mute_type):
        self._run(muted_repo.add, value, mute_type)
        self._preferences_changed()

    def list_smart_searches(self):
        return self._run(muted_repo.list_smart_searches)

    def add_smart_search(self, query):
        self._run(muted_repo.add_smart_search, query)
        self._preferences_changed()

    # Documents

    def query_documents(self, parent_id):
        sql, params = documents_repo.library_query(parent_id)
        try:
            with closing(connect(self.db_path)) as conn:
                df = pd.read_sql_query(sql, conn, params=params)
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            raise StorageError(str(exc)) from exc
        if df.empty:
            return []
        return [document_from_row(row) for row in df.to_dict("records")]

    def get_document_detail(self, doc_id):
        row = self._run(documents_repo.get, doc_id)
        return document_from_row(row) if row is not None else None

    def add_document(self, document, library_id=None):
        library_id = library_id or document.library_id
        if library_id and document.library_id != library_id:
            document = replace(document, library_id=library_id)
        if library_id:
            self._run(documents_repo.ensure_library, library_id)
        self._run(documents_repo.upsert, document)
        self._mutated(document.id)
        return document

    def remove_document(self, doc_id):
        removed = self._run(documents_repo.delete, doc_id)
        if removed:
            self._mutated(doc_id)
        return removed

    def _mutated(self, doc_id):
        if self.channel is not None:
            self.channel.publish(STORE_MUTATED, document_id=doc_id)

    def _preferences_changed(self):
        if self.channel is not None:
            self.channel.publish(PREFERENCES_CHANGED)
