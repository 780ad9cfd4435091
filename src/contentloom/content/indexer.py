"""Content indexer: path-scoped incremental updates and the exclusive full rebuild."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from contentloom import __version__
from contentloom.content.db import SCHEMA_VERSION, create_schema, get_meta, open_db, set_meta
from contentloom.content.parser import ContentParseError, parse_content
from contentloom.errors import ContentIndexError, ContentloomError

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from contentloom.config.models import CollectionConfig, ConfigSnapshot, FieldConfig
    from contentloom.schema.builder import SchemaArtifact

logger = logging.getLogger(__name__)

_STRING_TYPES = frozenset({"string", "datetime", "image", "rich-text", "reference"})


@dataclass
class IndexResult:
    """Summary of one index operation."""

    indexed: int = 0
    deleted: int = 0
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class IndexedDocument:
    """A document row as stored in the index."""

    path: str
    collection: str
    data: dict[str, Any]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_scalar(value: Any, fld: FieldConfig, path: str, loc: str) -> None:
    if fld.type in _STRING_TYPES:
        ok = isinstance(value, str)
        expected = "a string"
    elif fld.type == "number":
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        expected = "a number"
    elif fld.type == "boolean":
        ok = isinstance(value, bool)
        expected = "a boolean"
    else:  # object
        if not isinstance(value, dict):
            raise ContentIndexError(
                f"{path}: field '{loc}' expected a mapping, got {type(value).__name__}",
                path=path,
                field=loc,
            )
        validate_fields(value, fld.fields, path, prefix=f"{loc}.")
        return
    if not ok:
        raise ContentIndexError(
            f"{path}: field '{loc}' expected {expected}, got {type(value).__name__}",
            path=path,
            field=loc,
        )


def validate_fields(
    data: dict[str, Any],
    fields: Sequence[FieldConfig],
    path: str,
    *,
    prefix: str = "",
) -> None:
    """Check *data* against the collection's field definitions.

    Raises
    ------
    ContentIndexError
        Naming *path* and the offending (dotted) field.
    """
    for fld in fields:
        loc = f"{prefix}{fld.name}"
        value = data.get(fld.name)
        if value is None:
            if fld.required:
                raise ContentIndexError(
                    f"{path}: required field '{loc}' is missing", path=path, field=loc
                )
            continue
        if fld.list:
            if not isinstance(value, list):
                raise ContentIndexError(
                    f"{path}: field '{loc}' expected a list, got {type(value).__name__}",
                    path=path,
                    field=loc,
                )
            for i, item in enumerate(value):
                _check_scalar(item, fld, path, f"{loc}[{i}]")
        else:
            _check_scalar(value, fld, path, loc)


def collection_for_path(config: ConfigSnapshot, path: str) -> CollectionConfig | None:
    """Return the collection owning a content-root-relative *path*, if any.

    The deepest matching collection path wins when collections are nested.
    """
    pure = PurePosixPath(path)
    best: CollectionConfig | None = None
    for coll in config.collections:
        if pure.suffix != f".{coll.format}":
            continue
        if not pure.is_relative_to(coll.path):
            continue
        if best is None or len(coll.path) > len(best.path):
            best = coll
    return best


# ---------------------------------------------------------------------------
# Indexer
# ---------------------------------------------------------------------------


class ContentIndexer:
    """SQLite-backed content index.

    Every operation is a coroutine and holds ``self._lock`` for its whole
    duration, so a path-scoped update never interleaves with a full rebuild.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._config: ConfigSnapshot | None = None
        self._lock = asyncio.Lock()

    # -- lifecycle ----------------------------------------------------------

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await asyncio.to_thread(open_db, self.db_path)
        await asyncio.to_thread(create_schema, self._conn)

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ContentloomError("content index is not open")
        return self._conn

    @property
    def config(self) -> ConfigSnapshot:
        if self._config is None:
            raise ContentloomError("content index has not been built yet")
        return self._config

    # -- write operations ---------------------------------------------------

    async def index_by_paths(self, paths: Sequence[str]) -> IndexResult:
        """(Re)index the given content-root-relative paths."""
        async with self._lock:
            return await asyncio.to_thread(self._index_paths, self.config, list(paths))

    async def delete_by_paths(self, paths: Sequence[str]) -> IndexResult:
        """Remove the given content-root-relative paths from the index."""
        async with self._lock:
            return await asyncio.to_thread(self._delete_paths, list(paths))

    async def full_index(self, artifact: SchemaArtifact) -> IndexResult:
        """Rebuild the whole index against *artifact*'s configuration.

        Runs in one transaction: on failure the previous index is kept and the
        previous configuration stays active.
        """
        async with self._lock:
            result = await asyncio.to_thread(self._rebuild, artifact.config)
            self._config = artifact.config
        logger.info("Indexed %d document(s)", result.indexed)
        return result

    async def store_schema(self, sdl: str, digest: str) -> None:
        """Record the GraphQL SDL the index was built against."""

        def _store() -> None:
            with self.conn:
                set_meta(self.conn, "graphql_schema", sdl)
                set_meta(self.conn, "graphql_schema_hash", digest)

        async with self._lock:
            await asyncio.to_thread(_store)

    # -- read operations ----------------------------------------------------

    async def stored_schema(self) -> str | None:
        async with self._lock:
            return await asyncio.to_thread(get_meta, self.conn, "graphql_schema")

    async def get_document(self, path: str) -> IndexedDocument | None:
        async with self._lock:
            row = await asyncio.to_thread(
                lambda: self.conn.execute(
                    "SELECT path, collection, data FROM documents WHERE path = ?", (path,)
                ).fetchone()
            )
        return _row_to_document(row) if row is not None else None

    async def list_documents(self, collection: str) -> list[IndexedDocument]:
        async with self._lock:
            rows = await asyncio.to_thread(
                lambda: self.conn.execute(
                    "SELECT path, collection, data FROM documents "
                    "WHERE collection = ? ORDER BY path",
                    (collection,),
                ).fetchall()
            )
        return [_row_to_document(r) for r in rows]

    async def count(self) -> int:
        async with self._lock:
            row = await asyncio.to_thread(
                lambda: self.conn.execute("SELECT count(*) FROM documents").fetchone()
            )
        return int(row[0])

    async def last_indexed_at(self) -> str | None:
        async with self._lock:
            return await asyncio.to_thread(get_meta, self.conn, "last_full_index_at")

    # -- sync helpers (run in a worker thread) ------------------------------

    def _read_document(
        self, config: ConfigSnapshot, coll: CollectionConfig, rel_path: str
    ) -> tuple[dict[str, Any], str]:
        abs_path = config.content_root / rel_path
        raw = abs_path.read_bytes()
        body = coll.body_field
        try:
            data = parse_content(
                raw.decode("utf-8"), coll.format, body_field=body.name if body else None
            )
        except (ContentParseError, UnicodeDecodeError) as exc:
            raise ContentIndexError(f"{rel_path}: unable to parse: {exc}", path=rel_path) from exc
        validate_fields(data, coll.fields, rel_path)
        return data, hashlib.sha256(raw).hexdigest()

    def _upsert(self, rel_path: str, collection: str, data: dict[str, Any], digest: str) -> None:
        self.conn.execute(
            "INSERT INTO documents (path, collection, data, hash) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(path) DO UPDATE SET collection = excluded.collection, "
            "data = excluded.data, hash = excluded.hash",
            (rel_path, collection, json.dumps(data, ensure_ascii=False, sort_keys=True), digest),
        )

    def _index_paths(self, config: ConfigSnapshot, paths: list[str]) -> IndexResult:
        result = IndexResult()
        with self.conn:
            for rel_path in paths:
                coll = collection_for_path(config, rel_path)
                if coll is None:
                    logger.debug("Skipping %s: not part of any collection", rel_path)
                    result.skipped.append(rel_path)
                    continue
                if not (config.content_root / rel_path).is_file():
                    # Removed again before we got to it; last write wins.
                    self.conn.execute("DELETE FROM documents WHERE path = ?", (rel_path,))
                    result.deleted += 1
                    continue
                data, digest = self._read_document(config, coll, rel_path)
                self._upsert(rel_path, coll.name, data, digest)
                result.indexed += 1
        logger.debug("Indexed %s", ", ".join(paths))
        return result

    def _delete_paths(self, paths: list[str]) -> IndexResult:
        result = IndexResult()
        with self.conn:
            for rel_path in paths:
                cur = self.conn.execute("DELETE FROM documents WHERE path = ?", (rel_path,))
                result.deleted += cur.rowcount
        logger.debug("Deleted %s", ", ".join(paths))
        return result

    def _rebuild(self, config: ConfigSnapshot) -> IndexResult:
        result = IndexResult()
        with self.conn:
            self.conn.execute("DELETE FROM documents")
            for rel_path in _scan_content(config):
                coll = collection_for_path(config, rel_path)
                if coll is None:
                    continue
                data, digest = self._read_document(config, coll, rel_path)
                self._upsert(rel_path, coll.name, data, digest)
                result.indexed += 1
            set_meta(self.conn, "last_full_index_at", datetime.now(tz=timezone.utc).isoformat())
            set_meta(self.conn, "contentloom_version", __version__)
            set_meta(self.conn, "schema_version", SCHEMA_VERSION)
        return result


def _scan_content(config: ConfigSnapshot) -> Iterable[str]:
    """Yield every content file of every collection, sorted, content-root relative."""
    seen: set[str] = set()
    for coll in config.collections:
        base = config.content_root / coll.path
        if not base.is_dir():
            continue
        for file_path in sorted(base.rglob(f"*.{coll.format}")):
            if not file_path.is_file():
                continue
            rel = file_path.relative_to(config.content_root).as_posix()
            if rel not in seen:
                seen.add(rel)
                yield rel


def _row_to_document(row: sqlite3.Row) -> IndexedDocument:
    return IndexedDocument(
        path=row["path"],
        collection=row["collection"],
        data=json.loads(row["data"]),
    )
