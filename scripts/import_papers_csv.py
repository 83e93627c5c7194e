"""Import a CSV export of papers into the documents table.

Run from the repository root: python -m scripts.import_papers_csv --csv papers.csv
"""

import argparse
from pathlib import Path

import pandas as pd

from app.app import create_schema
from app.services.library_store import SqliteLibraryStore
from app.services.recommendations import document_from_payload

REQUIRED_COLUMNS = ["id", "title"]


def clean_record(record):
    # pandas gives NaN for empty cells
    return {k: (None if not isinstance(v, str) and pd.isna(v) else v) for k, v in record.items()}


def import_frame(store, df, library_id):
    """Upsert every valid row; returns (imported, skipped)."""
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise SystemExit(f"CSV missing columns: {missing}")

    imported = 0
    skipped = 0
    for record in df.to_dict("records"):
        try:
            document = document_from_payload(clean_record(record), library_id=library_id)
        except ValueError:
            skipped += 1
            continue
        store.add_document(document)
        imported += 1
    return imported, skipped


def main():
    parser = argparse.ArgumentParser(description="Import papers CSV into the documents table")
    parser.add_argument("--db", default="data/db/papers.db")
    parser.add_argument("--csv", required=True)
    parser.add_argument("--library", default="default", help="library id for rows without one")
    args = parser.parse_args()

    csv_path = Path(args.csv)
    if not csv_path.exists():
        raise SystemExit(f"CSV not found: {csv_path}")

    create_schema(args.db)
    df = pd.read_csv(csv_path, dtype={"id": str})
    imported, skipped = import_frame(SqliteLibraryStore(args.db), df, args.library)
    print(f"Imported {imported} papers ({skipped} skipped) into {args.db}")


if __name__ == "__main__":
    main()
