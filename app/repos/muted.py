"""Data-access helpers for muted authors, venues and categories."""

from app.db import get_db


def list_by_type(mute_type, db=None):
    db = db or get_db()
    cur = db.execute(
        "SELECT value, mute_type FROM muted_items WHERE mute_type = ? ORDER BY created_at, value",
        (mute_type,),
    )
    return [{"value": row["value"], "type": row["mute_type"]} for row in cur.fetchall()]


def add(value, mute_type, db=None):
    # Values are compared case-insensitively, store them lowercased
    db = db or get_db()
    db.execute(
        "INSERT OR IGNORE INTO muted_items (value, mute_type) VALUES (lower(?), ?)",
        (value.strip(), mute_type),
    )
    db.commit()


def list_smart_searches(db=None):
    db = db or get_db()
    cur = db.execute("SELECT query FROM smart_searches ORDER BY id")
    return [{"query": row["query"]} for row in cur.fetchall()]


def add_smart_search(query, db=None):
    db = db or get_db()
    db.execute("INSERT INTO smart_searches (query) VALUES (?)", (query,))
    db.commit()
