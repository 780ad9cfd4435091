"""Tests for contentloom.dev.session."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from rich.console import Console

from contentloom.dev.html import GITIGNORE
from contentloom.dev.session import DevOptions, DevSession
from contentloom.dev.watch import ChangeKind, PathEvent
from contentloom.errors import ConfigurationError, ContentloomError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from conftest import FakeBackend


def _session(root: Path, backend: FakeBackend, **options: object) -> DevSession:
    return DevSession(
        DevOptions(root_path=root, serve=False, **options),  # type: ignore[arg-type]
        console=Console(record=True, width=120),
        watch_backend=backend,
    )


@pytest_asyncio.fixture()
async def session(tmp_project: Path, backend: FakeBackend) -> AsyncIterator[DevSession]:
    s = _session(tmp_project, backend)
    yield s
    await s.close()


class TestStart:
    @pytest.mark.asyncio()
    async def test_writes_entry_point(self, session: DevSession, tmp_project: Path) -> None:
        await session.start()
        admin = tmp_project / "public" / "admin"
        assert 'src="http://localhost:4001/@contentloom/app/main.js"' in (
            admin / "index.html"
        ).read_text()
        assert (admin / ".gitignore").read_text() == GITIGNORE

    @pytest.mark.asyncio()
    async def test_watchers_and_summary(self, session: DevSession) -> None:
        await session.start()
        assert [w.scope.name for w in session.router.watchers] == ["content", "queries", "config"]

        text = session.console.export_text()
        assert "contentloom dev server is running" in text
        assert "http://localhost:4001/graphql" in text
        assert "contentloom/__generated__/client.ts" in text
        assert "Watching content" in text
        assert "full rebuild" in text

    @pytest.mark.asyncio()
    async def test_no_sdk_and_no_watch(self, tmp_project: Path, backend: FakeBackend) -> None:
        session = _session(tmp_project, backend, no_sdk=True, watch=False)
        try:
            await session.start()
        finally:
            await session.close()
        text = session.console.export_text()
        assert "GraphQL client" not in text
        assert "Watching" not in text
        assert session.router.watchers == []
        assert not session.config_manager.generated_types_ts_file_path.exists()

    @pytest.mark.asyncio()
    async def test_bad_config_is_fatal(self, session: DevSession, tmp_project: Path) -> None:
        (tmp_project / "contentloom" / "config.yml").write_text("schema: {}\n")
        with pytest.raises(ConfigurationError):
            await session.start()


class TestLiveUpdates:
    @pytest.mark.asyncio()
    async def test_query_change_regenerates_client(
        self, session: DevSession, tmp_project: Path
    ) -> None:
        await session.start()
        cm = session.config_manager
        (cm.user_queries_folder / "titles.gql").write_text(
            "query postTitles { postConnection { edges { node { title } } } }\n"
        )
        await session._on_query_event(
            PathEvent("contentloom/queries/titles.gql", ChangeKind.ADDED)
        )
        assert "PostTitlesQuery" in cm.generated_types_ts_file_path.read_text()
        assert session.reconciler.runs == 1

    @pytest.mark.asyncio()
    async def test_config_change_swaps_content_watcher(
        self, session: DevSession, tmp_project: Path
    ) -> None:
        await session.start()
        (tmp_project / "content" / "articles").mkdir()
        config = tmp_project / "contentloom" / "config.yml"
        config.write_text(config.read_text().replace("content/posts", "content/articles"))

        await session._on_config_event(PathEvent("contentloom/config.yml", ChangeKind.CHANGED))

        assert session.reconciler.runs == 2
        names = [w.scope.name for w in session.router.watchers]
        assert sorted(names) == ["config", "content", "queries"]
        content = next(w for w in session.router.watchers if w.scope.name == "content")
        assert any("content/articles" in p for p in content.scope.patterns)
        assert await session.indexer.count() == 1

    @pytest.mark.asyncio()
    async def test_broken_config_change_keeps_running(
        self, session: DevSession, tmp_project: Path
    ) -> None:
        await session.start()
        previous = session.reconciler.artifact
        (tmp_project / "contentloom" / "config.yml").write_text("schema: {}\n")

        await session._on_config_event(PathEvent("contentloom/config.yml", ChangeKind.CHANGED))

        assert session.reconciler.artifact is previous
        assert await session.indexer.count() == 2


class TestRun:
    @pytest.mark.asyncio()
    async def test_run_returns_after_stop(self, tmp_project: Path, backend: FakeBackend) -> None:
        session = _session(tmp_project, backend, watch=False)
        session.stop()
        await session.run()
        assert session.supervisor.is_shut_down
        with pytest.raises(ContentloomError, match="not open"):
            _ = session.indexer.conn

    @pytest.mark.asyncio()
    async def test_close_reaps_subprocess(self, tmp_project: Path, backend: FakeBackend) -> None:
        session = _session(tmp_project, backend, watch=False, command="sleep 30")
        await session.start()
        proc = session.supervisor.process
        assert proc is not None
        assert proc.returncode is None
        await session.close()
        assert proc.returncode is not None
