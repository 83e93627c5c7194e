"""Data-access helpers for libraries and their documents."""

import json

from app.db import get_db

DOCUMENT_COLUMNS = (
    "id, library_id, title, authors, venue, year, tags, citation_count, abstract, "
    "primary_category, is_starred, is_read, date_modified"
)


def ensure_library(library_id, name=None, db=None):
    db = db or get_db()
    db.execute(
        "INSERT OR IGNORE INTO libraries (id, name) VALUES (?, ?)",
        (library_id, name or library_id),
    )
    db.commit()


def upsert(document, db=None):
    # Lists are stored as JSON text
    db = db or get_db()
    db.execute(
        f"""
        INSERT OR REPLACE INTO documents ({DOCUMENT_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            document.id,
            document.library_id,
            document.title,
            json.dumps(list(document.authors)),
            document.venue,
            document.year,
            json.dumps(list(document.tags)),
            document.citation_count or 0,
            document.abstract,
            document.primary_category,
            1 if document.is_starred else 0,
            1 if document.is_read else 0,
            document.date_modified.isoformat() if document.date_modified else None,
        ),
    )
    db.commit()


def get(doc_id, db=None):
    db = db or get_db()
    cur = db.execute(f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (doc_id,))
    return cur.fetchone()


def delete(doc_id, db=None):
    db = db or get_db()
    cur = db.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
    db.commit()
    return cur.rowcount > 0


def library_query(library_id):
    """SQL and params selecting one library, or every document for None."""
    if library_id is None:
        return f"SELECT {DOCUMENT_COLUMNS} FROM documents ORDER BY rowid", ()
    return f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE library_id = ? ORDER BY rowid", (library_id,)


def count(library_id=None, db=None):
    db = db or get_db()
    if library_id is None:
        row = db.execute("SELECT COUNT(*) FROM documents").fetchone()
    else:
        row = db.execute("SELECT COUNT(*) FROM documents WHERE library_id = ?", (library_id,)).fetchone()
    return int(row[0])
