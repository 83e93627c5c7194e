"""Convert a GloVe/word2vec style text file into the joblib word-vector table.

Run from the repository root: python -m scripts.build_word_vectors --vectors glove.txt
"""

import argparse
import sqlite3
from pathlib import Path

import numpy as np

from app.services.library_store import document_from_row
from app.repos import documents as documents_repo
from recommender.embeddings import WordVectorTable, document_text
from utils.text import tokenize


def load_text_vectors(lines, vocabulary=None, limit=0):
    """Parse "word v1 v2 ..." lines; a word2vec "count dim" header line is skipped."""
    vectors = {}
    dim = None
    for line in lines:
        parts = line.rstrip().split(" ")
        if len(parts) < 2:
            continue
        if dim is None and len(parts) == 2 and all(p.isdigit() for p in parts):
            continue
        word = parts[0].lower()
        if vocabulary is not None and word not in vocabulary:
            continue
        try:
            values = np.asarray([float(v) for v in parts[1:]], dtype=np.float32)
        except ValueError:
            continue
        if dim is None:
            dim = values.shape[0]
        if values.shape[0] != dim or word in vectors:
            continue
        vectors[word] = values
        if limit and len(vectors) >= limit:
            break
    return vectors


def library_vocabulary(db_path):
    """Every embedding token that appears in the stored documents."""
    sql, params = documents_repo.library_query(None)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        rows = conn.execute(sql, params).fetchall()
    finally:
        conn.close()
    vocabulary = set()
    for row in rows:
        vocabulary.update(tokenize(document_text(document_from_row(row))))
    return vocabulary


def main():
    parser = argparse.ArgumentParser(description="Build the word-vector table used for document embeddings")
    parser.add_argument("--vectors", required=True, help="text file with one word and its vector per line")
    parser.add_argument("--out", default="data/word_vectors.joblib")
    parser.add_argument("--db", default="", help="keep only words found in this papers database")
    parser.add_argument("--limit", type=int, default=0, help="max words to keep (0 = all)")
    args = parser.parse_args()

    source = Path(args.vectors)
    if not source.exists():
        raise SystemExit(f"Vectors file not found: {source}")

    vocabulary = library_vocabulary(args.db) if args.db else None
    with source.open("r", encoding="utf-8", errors="ignore") as f:
        vectors = load_text_vectors(f, vocabulary=vocabulary, limit=args.limit)
    if not vectors:
        raise SystemExit("No vectors loaded")

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    table = WordVectorTable(vectors)
    table.save(out)
    print(f"Saved {len(table)} vectors (dim={table.dim}) to {out}")


if __name__ == "__main__":
    main()
