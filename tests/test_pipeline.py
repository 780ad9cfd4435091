"""Tests for contentloom.codegen.pipeline."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from contentloom.codegen.pipeline import (
    FRAGMENT_SIZE_LIMIT,
    Codegen,
    client_source,
    generate,
    maybe_warn_fragment_size,
)
from contentloom.config.models import ConnectionConfig, OutputMode
from contentloom.errors import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

    from contentloom.codegen.writer import ArtifactWriter
    from contentloom.config.manager import ConfigManager
    from contentloom.schema.builder import SchemaArtifact


@pytest.fixture()
def codegen(config_manager: ConfigManager, writer: ArtifactWriter) -> Codegen:
    return Codegen(config_manager, writer, port=4001)


def _generated_names(cm: ConfigManager) -> list[str]:
    return sorted(p.name for p in cm.generated_folder.iterdir() if p.is_file())


class TestClientSource:
    def test_client_source(self) -> None:
        src = client_source("http://localhost:4001/graphql", "t0k")
        assert src.startswith('import { createClient } from "@contentloom/client";')
        assert "url: 'http://localhost:4001/graphql', token: 't0k', queries" in src
        assert src.endswith("export default client;\n")


class TestExecute:
    @pytest.mark.asyncio()
    async def test_typescript_mode(
        self, codegen: Codegen, config_manager: ConfigManager, artifact: SchemaArtifact
    ) -> None:
        url = await codegen.execute(artifact)
        assert url == "http://localhost:4001/graphql"
        assert _generated_names(config_manager) == [
            "client.ts",
            "frags.gql",
            "queries.gql",
            "schema.gql",
            "types.ts",
        ]
        schema_gql = config_manager.generated_graphql_gql_path.read_text()
        assert schema_gql.startswith("# DO NOT MODIFY THIS FILE.")
        assert schema_gql.endswith("schema {\n  query: Query\n  mutation: Mutation\n}\n")

    @pytest.mark.asyncio()
    async def test_javascript_mode(
        self, codegen: Codegen, config_manager: ConfigManager, artifact: SchemaArtifact
    ) -> None:
        await codegen.execute(artifact)
        js_config = replace(artifact.config, output_mode=OutputMode.JAVASCRIPT)
        js_artifact = replace(artifact, config=js_config)
        await codegen.execute(js_artifact)

        cm = config_manager
        assert _generated_names(cm) == [
            "client.js",
            "frags.gql",
            "queries.gql",
            "schema.gql",
            "types.d.ts",
            "types.js",
        ]
        assert "export type PostQuery" in cm.generated_types_d_file_path.read_text()
        assert "export type" not in cm.generated_types_js_file_path.read_text()

    @pytest.mark.asyncio()
    async def test_execute_is_idempotent(
        self, codegen: Codegen, config_manager: ConfigManager, artifact: SchemaArtifact
    ) -> None:
        await codegen.execute(artifact)
        before = {
            p.name: (p.read_bytes(), p.stat().st_mtime_ns)
            for p in config_manager.generated_folder.iterdir()
        }
        await codegen.execute(artifact)
        after = {
            p.name: (p.read_bytes(), p.stat().st_mtime_ns)
            for p in config_manager.generated_folder.iterdir()
        }
        assert before == after

    @pytest.mark.asyncio()
    async def test_no_sdk_removes_generated_code(
        self, config_manager: ConfigManager, writer: ArtifactWriter, artifact: SchemaArtifact
    ) -> None:
        await Codegen(config_manager, writer, port=4001).execute(artifact)
        url = await Codegen(config_manager, writer, port=4001, no_sdk=True).execute(artifact)
        assert url == "http://localhost:4001/graphql"
        assert _generated_names(config_manager) == ["schema.gql"]

    @pytest.mark.asyncio()
    async def test_unresolvable_url_writes_nothing(
        self, config_manager: ConfigManager, writer: ArtifactWriter, artifact: SchemaArtifact
    ) -> None:
        bare = replace(artifact, config=replace(artifact.config, connection=ConnectionConfig()))
        with pytest.raises(ConfigurationError, match="Missing branch, clientId, token"):
            await Codegen(config_manager, writer).execute(bare)
        assert not config_manager.generated_folder.exists()


class TestFragmentSizeAdvisory:
    @pytest.mark.asyncio()
    async def test_large_fragment_doc_warns_but_succeeds(
        self,
        codegen: Codegen,
        config_manager: ConfigManager,
        artifact: SchemaArtifact,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        padding = "# padding\n" * (150 * 1024 // 10)
        big = replace(artifact, frag_doc=artifact.frag_doc + padding)
        with caplog.at_level(logging.WARNING, logger="contentloom.codegen.pipeline"):
            await codegen.execute(big)

        assert config_manager.generated_fragments_file_path.read_text() == big.frag_doc
        assert config_manager.generated_types_ts_file_path.is_file()
        assert "frags.gql is very large" in caplog.text
        assert "referenceDepth: 1" in caplog.text

    def test_small_file_is_quiet(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        path = tmp_path / "frags.gql"
        path.write_text("x" * FRAGMENT_SIZE_LIMIT)
        with caplog.at_level(logging.WARNING):
            assert maybe_warn_fragment_size(path) is False
        assert caplog.text == ""

    def test_missing_file(self, tmp_path: Path) -> None:
        assert maybe_warn_fragment_size(tmp_path / "nope.gql") is False


class TestGenerate:
    def test_generate_returns_both_sources(
        self, config_manager: ConfigManager, artifact: SchemaArtifact
    ) -> None:
        cm = config_manager
        cm.generated_folder.mkdir(parents=True)
        cm.generated_queries_file_path.write_text(artifact.query_doc)
        cm.generated_fragments_file_path.write_text(artifact.frag_doc)
        code = generate(
            artifact.graphql_schema,
            cm.user_queries_and_fragments_glob,
            cm.generated_queries_and_fragments_glob,
            "http://localhost:4001/graphql",
            token="t",
        )
        assert "createClient" in code.client_code
        assert "export function getSdk" in code.type_code.typed()
