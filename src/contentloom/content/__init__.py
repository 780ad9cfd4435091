"""Content domain: file parsing and the SQLite-backed content index."""

from contentloom.content.indexer import (
    ContentIndexer,
    IndexedDocument,
    IndexResult,
    collection_for_path,
    validate_fields,
)

__all__ = [
    "ContentIndexer",
    "IndexResult",
    "IndexedDocument",
    "collection_for_path",
    "validate_fields",
]
