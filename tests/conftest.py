"""Shared test fixtures for contentloom."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest
import yaml
from watchfiles import Change

from contentloom.codegen.writer import ArtifactWriter
from contentloom.config.manager import ConfigManager, parse_config
from contentloom.config.models import ConfigSnapshot
from contentloom.schema.builder import SchemaArtifact, build_graphql_schema, serialize_schema
from contentloom.schema.documents import build_documents

CONFIG_YAML = """\
clientId: abc123
branch: main
token: secret
schema:
  collections:
    - name: author
      label: Authors
      path: content/authors
      format: md
      fields:
        - name: name
          type: string
          required: true
        - name: body
          type: rich-text
          isBody: true
    - name: post
      label: Posts
      path: content/posts
      format: md
      fields:
        - name: title
          type: string
          required: true
        - name: draft
          type: boolean
        - name: tags
          type: string
          list: true
        - name: author
          type: reference
          collections: [author]
        - name: body
          type: rich-text
          isBody: true
"""

HELLO_POST = """\
---
title: Hello
draft: false
tags: [intro, news]
author: content/authors/jane.md
---

First post.
"""

JANE = """\
---
name: Jane
---

Writes things.
"""


def write_config(root: Path, text: str = CONFIG_YAML) -> Path:
    path = root / "contentloom" / "config.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture()
def tmp_project(tmp_path: Path) -> Path:
    """Create a minimal project: config, two collections, two documents."""
    write_config(tmp_path)
    (tmp_path / "contentloom" / "queries").mkdir()
    posts = tmp_path / "content" / "posts"
    posts.mkdir(parents=True)
    (posts / "hello.md").write_text(HELLO_POST, encoding="utf-8")
    authors = tmp_path / "content" / "authors"
    authors.mkdir(parents=True)
    (authors / "jane.md").write_text(JANE, encoding="utf-8")
    return tmp_path


@pytest.fixture()
def config_manager(tmp_project: Path) -> ConfigManager:
    return ConfigManager(tmp_project)


@pytest.fixture()
def writer(config_manager: ConfigManager) -> ArtifactWriter:
    return ArtifactWriter(config_manager)


@pytest.fixture()
def snapshot(config_manager: ConfigManager) -> ConfigSnapshot:
    data = yaml.safe_load(config_manager.config_file_path.read_text(encoding="utf-8"))
    return parse_config(
        data,
        root_path=config_manager.root_path,
        config_folder=config_manager.config_folder,
    )


@pytest.fixture()
def artifact(snapshot: ConfigSnapshot) -> SchemaArtifact:
    """Schema artifact for the sample project, built without touching disk."""
    schema, lookup = build_graphql_schema(snapshot)
    query_doc, frag_doc = build_documents(snapshot)
    return SchemaArtifact(
        config=snapshot,
        graphql_schema=schema,
        query_doc=query_doc,
        frag_doc=frag_doc,
        schema=serialize_schema(snapshot),
        lookup=lookup,
        graphql={},
    )


class FakeBackend:
    """Stands in for ``watchfiles.awatch``: yields whatever batches the test pushes."""

    def __init__(self) -> None:
        self.batches: asyncio.Queue[set[tuple[Change, str]] | None] = asyncio.Queue()
        self.roots: list[tuple[Any, ...]] = []

    async def __call__(
        self, *roots: Any, watch_filter: Any = None, debounce: int = 0, stop_event: Any = None
    ) -> AsyncIterator[set[tuple[Change, str]]]:
        self.roots.append(roots)
        while True:
            batch = await self.batches.get()
            if batch is None:
                return
            yield {(c, p) for c, p in batch if watch_filter is None or watch_filter(c, p)}

    def push(self, *changes: tuple[Change, Path]) -> None:
        self.batches.put_nowait({(c, str(p)) for c, p in changes})


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()
