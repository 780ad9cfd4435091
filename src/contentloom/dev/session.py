"""Dev session: wires the reconciler, the dev server, the watchers and the sub-command."""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from watchfiles import awatch

from contentloom.codegen.pipeline import Codegen
from contentloom.codegen.writer import ArtifactWriter
from contentloom.config.manager import ConfigManager
from contentloom.config.models import OutputMode
from contentloom.content.indexer import ContentIndexer
from contentloom.dev.html import GITIGNORE, dev_html
from contentloom.dev.reconcile import Reconciler
from contentloom.dev.server import create_app, start_server
from contentloom.dev.supervisor import LifecycleSupervisor
from contentloom.dev.watch import (
    PathEvent,
    ScopeAction,
    ScopeWatcher,
    WatchRouter,
    WatchScope,
    route_content_event,
)
from contentloom.errors import SubprocessError
from contentloom.schema.builder import SchemaBuilder

if TYPE_CHECKING:
    from pathlib import Path

    from contentloom.config.models import ConfigSnapshot
    from contentloom.dev.server import DevServer
    from contentloom.dev.watch import WatchBackend
    from contentloom.schema.builder import SchemaArtifact

logger = logging.getLogger(__name__)

DEFAULT_PORT = 4001


@dataclass(frozen=True)
class DevOptions:
    root_path: Path
    port: int = DEFAULT_PORT
    command: str | None = None
    watch: bool = True
    no_sdk: bool = False
    serve: bool = True


class DevSession:
    """One ``contentloom dev`` run.

    Start-up order: full reconcile, HTML entry point, dev server, watchers,
    summary, sub-command. A failure before the summary is fatal; after that,
    errors are logged and the session keeps going.
    """

    def __init__(
        self,
        options: DevOptions,
        *,
        console: Console | None = None,
        watch_backend: WatchBackend = awatch,
    ) -> None:
        self.options = options
        self.console = console or Console()
        self.config_manager = ConfigManager(options.root_path)
        self.writer = ArtifactWriter(self.config_manager)
        self.indexer = ContentIndexer(self.config_manager.content_db_path)
        self.reconciler = Reconciler(
            self.config_manager,
            self.indexer,
            SchemaBuilder(self.config_manager, self.writer),
            Codegen(self.config_manager, self.writer, port=options.port, no_sdk=options.no_sdk),
            self.writer,
        )
        self.router = WatchRouter(backend=watch_backend)
        self._stop = asyncio.Event()
        self.supervisor = LifecycleSupervisor(
            options.command, cwd=self.config_manager.root_path, on_exit=self._stop.set
        )
        self.server: DevServer | None = None
        self._server_task: asyncio.Task[None] | None = None
        self._content_watcher: ScopeWatcher | None = None

    # -- start-up -------------------------------------------------------------

    async def start(self) -> None:
        await self.reconciler.reconcile()
        await self.write_entry_point(self.reconciler.config)
        if self.options.serve:
            self.server, self._server_task = await start_server(
                create_app(self.reconciler), self.options.port
            )
        if self.options.watch:
            await self.start_watchers()
            self.reconciler.add_listener(self._on_reconciled)
        self.print_summary()

        self.supervisor.install()
        try:
            await self.supervisor.start()
        except SubprocessError as exc:
            logger.error("%s", exc)

    async def write_entry_point(self, config: ConfigSnapshot) -> None:
        cm = self.config_manager
        await self.writer.write(cm.output_html_file_path(config), dev_html(self.options.port))
        await self.writer.write(cm.output_gitignore_path(config), GITIGNORE)

    async def start_watchers(self) -> None:
        cm = self.config_manager
        await self._watch_content(self.reconciler.config)
        await self.router.watch(
            WatchScope(
                name="queries",
                roots=(cm.config_folder,),
                patterns=cm.user_queries_and_fragments_glob,
                action=ScopeAction.CODEGEN,
                base=cm.root_path,
            ),
            self._on_query_event,
        )
        await self.router.watch(
            WatchScope(
                name="config",
                roots=(cm.config_folder,),
                patterns=cm.config_files_glob,
                action=ScopeAction.RECONCILE,
                base=cm.root_path,
            ),
            self._on_config_event,
        )

    async def _watch_content(self, config: ConfigSnapshot) -> None:
        scope = WatchScope(
            name="content",
            roots=(config.content_root,),
            patterns=config.content_globs(),
            action=ScopeAction.INDEX,
            base=config.content_root,
        )
        self._content_watcher = await self.router.watch(
            scope, functools.partial(route_content_event, self.indexer)
        )

    # -- event handlers -------------------------------------------------------

    async def _on_query_event(self, event: PathEvent) -> None:
        await self.reconciler.regenerate_codegen()

    async def _on_config_event(self, event: PathEvent) -> None:
        await self.reconciler.reconcile()

    async def _on_reconciled(self, artifact: SchemaArtifact) -> None:
        logger.info("Config updated")
        await self.write_entry_point(artifact.config)
        watcher = self._content_watcher
        if watcher is None:
            return
        if (
            watcher.scope.roots == (artifact.config.content_root,)
            and watcher.scope.patterns == artifact.config.content_globs()
        ):
            return
        # Collections moved: swap the content watcher for one over the new globs.
        await watcher.stop()
        self.router.watchers.remove(watcher)
        await self._watch_content(artifact.config)

    # -- output ---------------------------------------------------------------

    def print_summary(self) -> None:
        cm = self.config_manager
        config = self.reconciler.config
        cms = f"<your-dev-server-url>/{cm.print_relative_path(cm.output_html_file_path(config))}"

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("CMS", cms)
        table.add_row("API playground", f"{cms}#/graphql")
        table.add_row("API url", self.reconciler.api_url or "")
        if config.has_separate_content_root:
            table.add_row("Content repo", str(config.content_root))
        if not self.options.no_sdk:
            if config.output_mode is OutputMode.TYPESCRIPT:
                client, types = cm.generated_client_ts_file_path, cm.generated_types_ts_file_path
            else:
                client, types = cm.generated_client_js_file_path, cm.generated_types_d_file_path
            table.add_row("GraphQL client", cm.print_relative_path(client))
            table.add_row("Types", cm.print_relative_path(types))
        if self.options.watch:
            for watcher in self.router.watchers:
                table.add_row(f"Watching {watcher.scope.name}", watcher.scope.action.value)

        self.console.print(
            Panel(table, title="[bold green]contentloom dev server is running[/bold green]")
        )

    # -- run / shutdown -------------------------------------------------------

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        try:
            await self.start()
            await self._stop.wait()
        finally:
            await self.close()

    async def close(self) -> None:
        self.supervisor.shutdown()
        self.supervisor.uninstall()
        await self.supervisor.wait()
        await self.router.close()
        if self.server is not None and self._server_task is not None:
            self.server.should_exit = True
            await asyncio.gather(self._server_task, return_exceptions=True)
            self.server = None
        await self.indexer.close()
        logger.debug("Dev session closed")
