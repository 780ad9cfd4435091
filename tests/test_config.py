"""Tests for contentloom.config: locating, loading and validating config.yml."""

from __future__ import annotations

import glob
from typing import TYPE_CHECKING, Any

import pytest

from contentloom.config.manager import ConfigManager, parse_config
from contentloom.config.models import OutputMode
from contentloom.errors import ConfigurationError
from contentloom.globs import matches

if TYPE_CHECKING:
    from pathlib import Path


def write_config(root: Path, text: str) -> None:
    folder = root / "contentloom"
    folder.mkdir(parents=True, exist_ok=True)
    (folder / "config.yml").write_text(text, encoding="utf-8")


def _parse(tmp_path: Path, data: Any):
    return parse_config(data, root_path=tmp_path, config_folder=tmp_path / "contentloom")


def _collection(**overrides: Any) -> dict[str, Any]:
    coll: dict[str, Any] = {
        "name": "post",
        "path": "content/posts",
        "fields": [{"name": "title", "type": "string"}],
    }
    coll.update(overrides)
    return coll


class TestConfigManagerPaths:
    def test_default_folder(self, tmp_path: Path) -> None:
        cm = ConfigManager(tmp_path)
        assert cm.config_folder == tmp_path.resolve() / "contentloom"
        assert not cm.is_using_legacy_folder
        assert cm.generated_folder == cm.config_folder / "__generated__"

    def test_legacy_folder_used_when_only_legacy_exists(self, tmp_path: Path) -> None:
        (tmp_path / ".contentloom").mkdir()
        cm = ConfigManager(tmp_path)
        assert cm.is_using_legacy_folder
        assert cm.config_folder.name == ".contentloom"

    def test_current_folder_wins_over_legacy(self, tmp_path: Path) -> None:
        (tmp_path / ".contentloom").mkdir()
        (tmp_path / "contentloom").mkdir()
        assert not ConfigManager(tmp_path).is_using_legacy_folder

    def test_generated_layout(self, tmp_path: Path) -> None:
        cm = ConfigManager(tmp_path)
        gen = cm.generated_folder
        assert cm.generated_queries_file_path == gen / "queries.gql"
        assert cm.generated_fragments_file_path == gen / "frags.gql"
        assert cm.generated_graphql_gql_path == gen / "schema.gql"
        assert cm.generated_types_d_file_path.name == "types.d.ts"
        assert cm.lock_file_path == cm.config_folder / "contentloom-lock.json"
        assert cm.content_db_path == gen / ".cache" / "content.db"

    def test_globs_escape_the_project_root(self, tmp_path: Path) -> None:
        root = tmp_path / "[site]"
        root.mkdir()
        cm = ConfigManager(root)
        assert matches(cm.config_files_glob, cm.config_folder / "config.yml")
        assert matches(cm.user_queries_and_fragments_glob, cm.user_queries_folder / "a.gql")
        assert matches(cm.generated_queries_and_fragments_glob, cm.generated_queries_file_path)

    def test_yaml_extension_is_found(self, tmp_path: Path) -> None:
        folder = tmp_path / "contentloom"
        folder.mkdir()
        (folder / "config.yaml").write_text("schema: {}\n")
        assert ConfigManager(tmp_path).config_file_path.name == "config.yaml"

    def test_print_relative_path(self, tmp_path: Path) -> None:
        cm = ConfigManager(tmp_path)
        assert cm.print_relative_path(cm.generated_queries_file_path) == (
            "contentloom/__generated__/queries.gql"
        )


class TestConfigLoad:
    @pytest.mark.asyncio()
    async def test_load_project(self, config_manager: ConfigManager) -> None:
        snapshot = await config_manager.load()
        assert [c.name for c in snapshot.collections] == ["author", "post"]
        assert snapshot.connection.client_id == "abc123"
        assert snapshot.output_mode is OutputMode.TYPESCRIPT
        assert snapshot.content_root == config_manager.root_path

    @pytest.mark.asyncio()
    async def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="contentloom init"):
            await ConfigManager(tmp_path).load()

    @pytest.mark.asyncio()
    async def test_invalid_yaml(self, tmp_path: Path) -> None:
        write_config(tmp_path, "schema: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            await ConfigManager(tmp_path).load()

    @pytest.mark.asyncio()
    async def test_each_load_is_a_new_snapshot(self, config_manager: ConfigManager) -> None:
        first = await config_manager.load()
        second = await config_manager.load()
        assert first == second
        assert first is not second


class TestParseConfig:
    def test_collections_required(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _parse(tmp_path, {"schema": {"collections": []}})
        assert exc_info.value.missing == ("collections",)

    def test_defaults(self, tmp_path: Path) -> None:
        snapshot = _parse(tmp_path, {"schema": {"collections": [_collection()]}})
        coll = snapshot.collection("post")
        assert coll.format == "md"
        assert coll.label == "post"
        assert snapshot.reference_depth == 2
        assert snapshot.build.public_folder == "public"
        assert snapshot.build.output_folder == "admin"

    def test_typescript_false_selects_javascript(self, tmp_path: Path) -> None:
        snapshot = _parse(
            tmp_path, {"typescript": False, "schema": {"collections": [_collection()]}}
        )
        assert snapshot.output_mode is OutputMode.JAVASCRIPT

    def test_unknown_field_type(self, tmp_path: Path) -> None:
        coll = _collection(fields=[{"name": "x", "type": "color"}])
        with pytest.raises(ConfigurationError, match=r"fields\[0\]\.type"):
            _parse(tmp_path, {"schema": {"collections": [coll]}})

    def test_reserved_field_name(self, tmp_path: Path) -> None:
        coll = _collection(fields=[{"name": "id", "type": "string"}])
        with pytest.raises(ConfigurationError, match="reserved"):
            _parse(tmp_path, {"schema": {"collections": [coll]}})

    def test_reference_to_unknown_collection(self, tmp_path: Path) -> None:
        coll = _collection(fields=[{"name": "a", "type": "reference", "collections": ["nope"]}])
        with pytest.raises(ConfigurationError, match="unknown collection 'nope'"):
            _parse(tmp_path, {"schema": {"collections": [coll]}})

    def test_two_body_fields(self, tmp_path: Path) -> None:
        coll = _collection(
            fields=[
                {"name": "a", "type": "rich-text", "isBody": True},
                {"name": "b", "type": "rich-text", "isBody": True},
            ]
        )
        with pytest.raises(ConfigurationError, match="only one field may set isBody"):
            _parse(tmp_path, {"schema": {"collections": [coll]}})

    def test_duplicate_collection(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="duplicate collection"):
            _parse(tmp_path, {"schema": {"collections": [_collection(), _collection()]}})

    def test_negative_reference_depth(self, tmp_path: Path) -> None:
        data = {"client": {"referenceDepth": -1}, "schema": {"collections": [_collection()]}}
        with pytest.raises(ConfigurationError, match="referenceDepth"):
            _parse(tmp_path, data)

    def test_local_content_path(self, tmp_path: Path) -> None:
        (tmp_path / "site-content").mkdir()
        data = {"localContentPath": "../site-content", "schema": {"collections": [_collection()]}}
        snapshot = _parse(tmp_path, data)
        assert snapshot.content_root == (tmp_path / "site-content").resolve()
        assert snapshot.has_separate_content_root

    def test_content_globs(self, tmp_path: Path) -> None:
        snapshot = _parse(tmp_path, {"schema": {"collections": [_collection(format="json")]}})
        assert snapshot.content_globs() == (f"{tmp_path.as_posix()}/content/posts/**/*.json",)

    def test_content_globs_escape_the_root(self, tmp_path: Path) -> None:
        root = tmp_path / "[site]"
        snapshot = _parse(root, {"schema": {"collections": [_collection()]}})
        (pattern,) = snapshot.content_globs()
        assert pattern == f"{glob.escape(root.as_posix())}/content/posts/**/*.md"
        assert matches([pattern], root / "content" / "posts" / "hello.md")
        assert not matches([pattern], tmp_path / "s" / "content" / "posts" / "hello.md")

    def test_cloud_override(self, tmp_path: Path) -> None:
        data = {
            "cloud": {"contentApiUrlOverride": "https://example.test"},
            "schema": {"collections": [_collection()]},
        }
        assert _parse(tmp_path, data).connection.cloud_url_override == "https://example.test"
