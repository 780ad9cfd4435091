"""GraphQL resolvers bound to the content index through ``info.context["index"]``."""

from __future__ import annotations

import asyncio
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from graphql import GraphQLError

from contentloom.content.parser import serialize_content
from contentloom.schema.documents import type_name

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from graphql import GraphQLAbstractType, GraphQLResolveInfo

    from contentloom.config.models import CollectionConfig, ConfigSnapshot
    from contentloom.content.indexer import ContentIndexer, IndexedDocument


def _index(info: GraphQLResolveInfo) -> ContentIndexer:
    index: ContentIndexer = info.context["index"]
    return index


def system_info(config: ConfigSnapshot, coll: CollectionConfig, path: str) -> dict[str, Any]:
    pure = PurePosixPath(path)
    relative = pure.relative_to(coll.path)
    return {
        "filename": pure.stem,
        "basename": pure.name,
        "breadcrumbs": [*relative.parent.parts, relative.stem],
        "path": path,
        "relativePath": relative.as_posix(),
        "extension": pure.suffix,
        "collection": coll.name,
    }


def document_value(config: ConfigSnapshot, doc: IndexedDocument) -> dict[str, Any]:
    """Shape an index row the way the generated schema expects to read it."""
    coll = config.collection(doc.collection)
    return {
        **doc.data,
        "__typename": type_name(coll.name),
        "id": doc.path,
        "_sys": system_info(config, coll, doc.path),
        "_values": doc.data,
    }


async def _load(index: ContentIndexer, path: str) -> dict[str, Any]:
    doc = await index.get_document(path)
    if doc is None:
        raise GraphQLError(f"Unable to find record {path}")
    return document_value(index.config, doc)


def resolve_typename(
    value: Any, info: GraphQLResolveInfo, abstract_type: GraphQLAbstractType
) -> str:
    return str(value["__typename"])


# ---------------------------------------------------------------------------
# Field resolvers
# ---------------------------------------------------------------------------


async def reference(parent: dict[str, Any], info: GraphQLResolveInfo) -> dict[str, Any] | None:
    path = parent.get(info.field_name)
    if not path:
        return None
    return await _load(_index(info), path)


async def reference_list(
    parent: dict[str, Any], info: GraphQLResolveInfo
) -> list[dict[str, Any]] | None:
    paths = parent.get(info.field_name)
    if paths is None:
        return None
    index = _index(info)
    return [await _load(index, p) for p in paths]


async def document(
    _root: Any, info: GraphQLResolveInfo, collection: str, relativePath: str
) -> dict[str, Any]:
    index = _index(info)
    try:
        coll = index.config.collection(collection)
    except KeyError:
        raise GraphQLError(f"Unknown collection {collection}") from None
    return await _load(index, f"{coll.path}/{relativePath}")


def collection_document(name: str) -> Callable[..., Awaitable[dict[str, Any]]]:
    async def resolve(_root: Any, info: GraphQLResolveInfo, relativePath: str) -> dict[str, Any]:
        index = _index(info)
        coll = index.config.collection(name)
        return await _load(index, f"{coll.path}/{relativePath}")

    return resolve


def collection_connection(name: str) -> Callable[..., Awaitable[dict[str, Any]]]:
    async def resolve(
        _root: Any, info: GraphQLResolveInfo, first: int | None = None, after: str | None = None
    ) -> dict[str, Any]:
        index = _index(info)
        docs = await index.list_documents(name)
        total = len(docs)
        if after is not None:
            docs = [d for d in docs if d.path > after]
        if first is not None:
            docs = docs[: max(first, 0)]
        return {
            "totalCount": total,
            "edges": [{"cursor": d.path, "node": document_value(index.config, d)} for d in docs],
        }

    return resolve


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def write_document(name: str, *, create: bool) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Write the document to disk, then index it so the response reflects the change.

    The content watcher will see the same write and index it again; that
    second pass is a no-op in effect.
    """

    async def resolve(
        _root: Any, info: GraphQLResolveInfo, relativePath: str, params: dict[str, Any]
    ) -> dict[str, Any]:
        index = _index(info)
        config = index.config
        coll = config.collection(name)
        path = f"{coll.path}/{relativePath}"
        target = config.content_root / path
        exists = await asyncio.to_thread(target.is_file)
        if create and exists:
            raise GraphQLError(f"Unable to add document, {path} already exists")
        if not create and not exists:
            raise GraphQLError(f"Unable to find record {path}")
        body = coll.body_field
        text = serialize_content(
            {k: v for k, v in params.items() if v is not None},
            coll.format,
            body_field=body.name if body else None,
        )
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_text, text, encoding="utf-8")
        await index.index_by_paths([path])
        return await _load(index, path)

    return resolve


async def delete_document(
    _root: Any, info: GraphQLResolveInfo, collection: str, relativePath: str
) -> dict[str, Any] | None:
    index = _index(info)
    try:
        coll = index.config.collection(collection)
    except KeyError:
        raise GraphQLError(f"Unknown collection {collection}") from None
    path = f"{coll.path}/{relativePath}"
    existing = await _load(index, path)
    target = index.config.content_root / path
    await asyncio.to_thread(target.unlink, missing_ok=True)
    await index.delete_by_paths([path])
    return existing
