"""Reconciler: the full rebuild sequence, run one at a time."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import TYPE_CHECKING, Any

from contentloom.errors import ContentloomError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from contentloom.codegen.pipeline import Codegen
    from contentloom.codegen.writer import ArtifactWriter
    from contentloom.config.manager import ConfigManager
    from contentloom.config.models import ConfigSnapshot
    from contentloom.content.indexer import ContentIndexer
    from contentloom.schema.builder import SchemaArtifact, SchemaBuilder

    Listener = Callable[[SchemaArtifact], Awaitable[None]]

logger = logging.getLogger(__name__)


def _read_json(path: Path) -> Any:
    with path.open(encoding="utf-8") as f:
        return json.load(f)


class Reconciler:
    """Brings every derived artifact in line with the config and content.

    Sequence: load config, assemble the schema in memory, rebuild the content
    index, then persist the schema side files and the lock file, run codegen.
    Nothing schema-derived reaches disk until the index accepts the content.

    Only one reconcile runs at a time. A trigger that arrives while one is
    running marks it pending; the running loop then goes round exactly once
    more, however many triggers arrived.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        indexer: ContentIndexer,
        schema_builder: SchemaBuilder,
        codegen: Codegen,
        writer: ArtifactWriter,
    ) -> None:
        self.config_manager = config_manager
        self.indexer = indexer
        self.schema_builder = schema_builder
        self.codegen = codegen
        self.writer = writer
        self.codegen_lock = asyncio.Lock()
        self.artifact: SchemaArtifact | None = None
        self.api_url: str | None = None
        self.runs = 0
        self._running = False
        self._pending = False
        self._listeners: list[Listener] = []

    @property
    def config(self) -> ConfigSnapshot:
        if self.artifact is None:
            raise ContentloomError("no successful reconcile yet")
        return self.artifact.config

    @property
    def running(self) -> bool:
        return self._running

    def add_listener(self, listener: Listener) -> None:
        """Call *listener* with the new artifact after every successful reconcile."""
        self._listeners.append(listener)

    async def reconcile(self) -> None:
        """Run (or schedule) a full reconcile.

        Errors from the very first reconcile propagate. Later errors are
        logged and the previous snapshot and artifacts stay in place.
        """
        if self._running:
            self._pending = True
            logger.debug("Reconcile already running; queued one more")
            return
        self._running = True
        try:
            while True:
                self._pending = False
                first = self.artifact is None
                try:
                    await self._run_once()
                except ContentloomError as exc:
                    if first:
                        raise
                    logger.error("Rebuild failed, keeping previous state: %s", exc)
                except Exception:
                    if first:
                        raise
                    logger.exception("Rebuild failed, keeping previous state")
                if not self._pending:
                    break
        finally:
            self._running = False

    async def _run_once(self) -> None:
        self.runs += 1
        config = await self.config_manager.load()
        await self.indexer.open()
        artifact = self.schema_builder.assemble(config)
        await self.indexer.full_index(artifact)
        await self.schema_builder.persist(self.indexer, artifact)
        if not self.config_manager.is_using_legacy_folder:
            await self.write_lock_file()
        async with self.codegen_lock:
            self.api_url = await self.codegen.execute(artifact)
            self.artifact = artifact
        for listener in self._listeners:
            await listener(artifact)

    async def write_lock_file(self) -> None:
        """Aggregate the three schema JSON files, as they are on disk, into the lock file."""
        cm = self.config_manager
        schema, lookup, graphql = await asyncio.to_thread(
            lambda: tuple(
                _read_json(p)
                for p in (
                    cm.generated_schema_json_path,
                    cm.generated_lookup_json_path,
                    cm.generated_graphql_json_path,
                )
            )
        )
        await self.writer.write_json(
            cm.lock_file_path, {"schema": schema, "lookup": lookup, "graphql": graphql}
        )

    async def regenerate_codegen(self) -> None:
        """Re-collect the canonical documents and rerun codegen only.

        Neither the content index nor the base schema is touched. The current
        artifact is read under the codegen lock so a reconcile that is writing
        a new output mode finishes first.
        """
        async with self.codegen_lock:
            if self.artifact is None:
                logger.debug("Skipping codegen: nothing reconciled yet")
                return
            query_doc, frag_doc = self.schema_builder.collect_documents(self.artifact.config)
            artifact = dataclasses.replace(self.artifact, query_doc=query_doc, frag_doc=frag_doc)
            await self.codegen.execute(artifact)
        logger.info("Regenerated client")
