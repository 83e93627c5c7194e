"""Data-access helpers for serialized recommendation profiles and settings."""

import json

from app.db import get_db


def get_blob(library_id, db=None):
    db = db or get_db()
    row = db.execute(
        "SELECT blob FROM recommendation_profiles WHERE library_id = ?", (library_id,)
    ).fetchone()
    return row["blob"] if row else None


def save_blob(library_id, blob, db=None):
    db = db or get_db()
    db.execute(
        """
        INSERT INTO recommendation_profiles (library_id, blob, updated_at)
        VALUES (?, ?, CURRENT_TIMESTAMP)
        ON CONFLICT(library_id) DO UPDATE SET blob = excluded.blob, updated_at = excluded.updated_at
        """,
        (library_id, blob),
    )
    db.commit()


def load_settings(db=None):
    # Values are JSON encoded so bools and numbers survive the round trip
    db = db or get_db()
    cur = db.execute("SELECT key, value FROM recommendation_settings")
    settings = {}
    for row in cur.fetchall():
        try:
            settings[row["key"]] = json.loads(row["value"])
        except (TypeError, ValueError):
            settings[row["key"]] = row["value"]
    return settings


def save_settings(values, db=None):
    db = db or get_db()
    db.execute("DELETE FROM recommendation_settings")
    db.executemany(
        "INSERT INTO recommendation_settings (key, value) VALUES (?, ?)",
        [(key, json.dumps(value)) for key, value in values.items()],
    )
    db.commit()
