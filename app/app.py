import logging
import os
import sqlite3

from flask import Flask, jsonify

from app.db import close_db
from app.repos import documents as documents_repo
from app.routes.api import api_bp
from app.services import recommendations as rec_service


def _default_db_path():
    root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    return os.path.join(root, "data", "db", "papers.db")


def init_db(app):
    create_schema(app.config["DATABASE"])


def create_schema(db_path):
    # Make sure core tables exist
    folder = os.path.dirname(db_path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    db = sqlite3.connect(db_path)
    cur = db.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS libraries (
            id TEXT PRIMARY KEY,
            name TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS documents (
            id TEXT PRIMARY KEY,
            library_id TEXT,
            title TEXT NOT NULL,
            authors TEXT,
            venue TEXT,
            year INTEGER,
            tags TEXT,
            citation_count INTEGER DEFAULT 0,
            abstract TEXT,
            primary_category TEXT,
            is_starred INTEGER DEFAULT 0,
            is_read INTEGER DEFAULT 0,
            date_modified TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_library ON documents (library_id)")
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS muted_items (
            value TEXT NOT NULL,
            mute_type TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (value, mute_type)
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS smart_searches (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            query TEXT NOT NULL,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS recommendation_profiles (
            library_id TEXT PRIMARY KEY,
            blob TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS recommendation_settings (
            key TEXT PRIMARY KEY,
            value TEXT
        )
        """
    )

    # Add starred/read columns if missing (existing DB)
    cur.execute("PRAGMA table_info(documents)")
    doc_cols = {row[1] for row in cur.fetchall()}
    if "is_starred" not in doc_cols:
        cur.execute("ALTER TABLE documents ADD COLUMN is_starred INTEGER DEFAULT 0")
    if "is_read" not in doc_cols:
        cur.execute("ALTER TABLE documents ADD COLUMN is_read INTEGER DEFAULT 0")
    if "primary_category" not in doc_cols:
        cur.execute("ALTER TABLE documents ADD COLUMN primary_category TEXT")

    db.commit()
    db.close()


def _configure_logging(level_name):
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("recommender").setLevel(level)


def create_app():
    app = Flask(__name__)
    app.config["DATABASE"] = os.environ.get("PAPERS_DB_PATH", _default_db_path())
    app.config["LIBRARY_ID"] = os.environ.get("RECOMMENDER_LIBRARY_ID", "default")
    app.config["RECOMMENDER_CACHE_TTL_SEC"] = int(os.environ.get("RECOMMENDER_CACHE_TTL_SEC", "300"))
    app.config["WORD_VECTORS_PATH"] = os.environ.get("WORD_VECTORS_PATH")
    _configure_logging(os.environ.get("RECOMMENDER_LOG_LEVEL", "INFO"))

    init_db(app)
    app.teardown_appcontext(close_db)
    app.register_blueprint(api_bp)
    rec_service.init_recommender(app)

    @app.get("/health")
    def health():
        ctx = rec_service.get_context()
        return jsonify(
            {
                "ok": True,
                "library": ctx.library_id,
                "documents": documents_repo.count(ctx.library_id),
                "indexed": ctx.similarity.indexed_count(),
            }
        )

    return app


if __name__ == "__main__":
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    create_app().run(debug=debug)
