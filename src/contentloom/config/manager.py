"""Config manager: locate the config folder, load ``config.yml``, derive output paths."""

from __future__ import annotations

import asyncio
import glob
import logging
import re
from pathlib import Path
from typing import Any

import yaml

from contentloom.config.models import (
    CONTENT_FORMATS,
    DEFAULT_FORMAT,
    DEFAULT_REFERENCE_DEPTH,
    FIELD_TYPES,
    BuildConfig,
    CollectionConfig,
    ConfigSnapshot,
    ConnectionConfig,
    FieldConfig,
    OutputMode,
)
from contentloom.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FOLDER = "contentloom"
LEGACY_CONFIG_FOLDER = ".contentloom"
GENERATED_FOLDER = "__generated__"
LOCK_FILE = "contentloom-lock.json"

_CONFIG_FILES = ("config.yml", "config.yaml")
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_RESERVED_FIELDS = frozenset({"id", "_sys", "_values", "__typename"})


class ConfigManager:
    """Knows where everything lives for one project root.

    The manager itself holds no configuration values: :meth:`load` returns a
    fresh :class:`ConfigSnapshot` each time it is called.
    """

    def __init__(self, root_path: str | Path | None = None) -> None:
        self.root_path = Path(root_path or Path.cwd()).resolve()
        legacy = self.root_path / LEGACY_CONFIG_FOLDER
        current = self.root_path / CONFIG_FOLDER
        self.is_using_legacy_folder = legacy.is_dir() and not current.is_dir()
        self.config_folder = legacy if self.is_using_legacy_folder else current
        self.generated_folder = self.config_folder / GENERATED_FOLDER

    # -- generated artifact locations -------------------------------------

    @property
    def config_file_path(self) -> Path:
        for name in _CONFIG_FILES:
            candidate = self.config_folder / name
            if candidate.is_file():
                return candidate
        return self.config_folder / _CONFIG_FILES[0]

    @property
    def user_queries_folder(self) -> Path:
        return self.config_folder / "queries"

    @property
    def generated_queries_file_path(self) -> Path:
        return self.generated_folder / "queries.gql"

    @property
    def generated_fragments_file_path(self) -> Path:
        return self.generated_folder / "frags.gql"

    @property
    def generated_graphql_gql_path(self) -> Path:
        return self.generated_folder / "schema.gql"

    @property
    def generated_types_ts_file_path(self) -> Path:
        return self.generated_folder / "types.ts"

    @property
    def generated_types_d_file_path(self) -> Path:
        return self.generated_folder / "types.d.ts"

    @property
    def generated_types_js_file_path(self) -> Path:
        return self.generated_folder / "types.js"

    @property
    def generated_client_ts_file_path(self) -> Path:
        return self.generated_folder / "client.ts"

    @property
    def generated_client_js_file_path(self) -> Path:
        return self.generated_folder / "client.js"

    @property
    def generated_schema_json_path(self) -> Path:
        return self.generated_folder / "_schema.json"

    @property
    def generated_lookup_json_path(self) -> Path:
        return self.generated_folder / "_lookup.json"

    @property
    def generated_graphql_json_path(self) -> Path:
        return self.generated_folder / "_graphql.json"

    @property
    def lock_file_path(self) -> Path:
        return self.config_folder / LOCK_FILE

    @property
    def content_db_path(self) -> Path:
        return self.generated_folder / ".cache" / "content.db"

    # -- globs --------------------------------------------------------------

    @property
    def user_queries_and_fragments_glob(self) -> tuple[str, ...]:
        base = glob.escape(self.user_queries_folder.as_posix())
        return (f"{base}/**/*.graphql", f"{base}/**/*.gql")

    @property
    def generated_queries_and_fragments_glob(self) -> tuple[str, ...]:
        base = glob.escape(self.generated_folder.as_posix())
        return (f"{base}/queries.gql", f"{base}/frags.gql")

    @property
    def config_files_glob(self) -> tuple[str, ...]:
        base = glob.escape(self.config_folder.as_posix())
        return tuple(f"{base}/{name}" for name in _CONFIG_FILES)

    # -- HTML entry point -----------------------------------------------------

    def output_html_file_path(self, config: ConfigSnapshot) -> Path:
        return self._output_folder(config) / "index.html"

    def output_gitignore_path(self, config: ConfigSnapshot) -> Path:
        return self._output_folder(config) / ".gitignore"

    def _output_folder(self, config: ConfigSnapshot) -> Path:
        return self.root_path / config.build.public_folder / config.build.output_folder

    # -- printing helpers -----------------------------------------------------

    def print_relative_path(self, path: Path) -> str:
        """Render *path* relative to the project root, for log and summary lines."""
        try:
            return path.relative_to(self.root_path).as_posix()
        except ValueError:
            return path.as_posix()

    @staticmethod
    def print_content_relative_path(config: ConfigSnapshot, path: str | Path) -> str:
        """Translate an absolute watcher path into a content-root-relative POSIX path."""
        p = Path(path)
        if not p.is_absolute():
            return p.as_posix()
        return p.relative_to(config.content_root).as_posix()

    # -- loading ------------------------------------------------------------

    async def load(self) -> ConfigSnapshot:
        """Read and validate the config file into a new snapshot.

        Raises
        ------
        ConfigurationError
            When the file is missing, is not valid YAML, or fails validation.
        """
        path = self.config_file_path
        if not path.is_file():
            raise ConfigurationError(
                f"Unable to find config file at {self.print_relative_path(path)}. "
                "Run `contentloom init` to create one."
            )
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path.name}: {exc}") from exc
        except OSError as exc:
            raise ConfigurationError(f"Unable to read {path.name}: {exc}") from exc

        snapshot = parse_config(data, root_path=self.root_path, config_folder=self.config_folder)
        logger.debug(
            "Loaded %s: %d collection(s), output mode %s",
            path.name,
            len(snapshot.collections),
            snapshot.output_mode.value,
        )
        return snapshot


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def parse_config(data: Any, *, root_path: Path, config_folder: Path) -> ConfigSnapshot:
    """Validate raw YAML data and build a :class:`ConfigSnapshot`."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("config: expected a mapping at the top level")

    schema = data.get("schema") or {}
    if not isinstance(schema, dict):
        raise ConfigurationError("schema: expected a mapping")
    raw_collections = schema.get("collections")
    if not isinstance(raw_collections, list) or not raw_collections:
        raise ConfigurationError(
            "schema.collections: at least one collection is required", missing=["collections"]
        )

    collections = tuple(
        _parse_collection(raw, f"schema.collections[{i}]") for i, raw in enumerate(raw_collections)
    )
    _check_collection_names(collections)
    _check_references(collections)

    content_root = root_path
    local_content_path = data.get("localContentPath")
    if local_content_path:
        content_root = (config_folder / str(local_content_path)).resolve()
        if not content_root.is_dir():
            raise ConfigurationError(
                f"localContentPath: {content_root} does not exist or is not a directory"
            )

    cloud = data.get("cloud") or {}
    connection = ConnectionConfig(
        branch=_optional_str(data, "branch"),
        client_id=_optional_str(data, "clientId"),
        token=_optional_str(data, "token"),
        content_api_url_override=_optional_str(data, "contentApiUrlOverride"),
        cloud_url_override=_optional_str(cloud, "contentApiUrlOverride")
        if isinstance(cloud, dict)
        else None,
    )

    build_raw = data.get("build") or {}
    if not isinstance(build_raw, dict):
        raise ConfigurationError("build: expected a mapping")
    build = BuildConfig(
        public_folder=str(build_raw.get("publicFolder", "public")),
        output_folder=str(build_raw.get("outputFolder", "admin")),
    )

    client = data.get("client") or {}
    if not isinstance(client, dict):
        raise ConfigurationError("client: expected a mapping")
    depth = client.get("referenceDepth", DEFAULT_REFERENCE_DEPTH)
    if not isinstance(depth, int) or isinstance(depth, bool) or depth < 0:
        raise ConfigurationError("client.referenceDepth: expected a non-negative integer")

    typescript = data.get("typescript", True)
    if not isinstance(typescript, bool):
        raise ConfigurationError("typescript: expected true or false")

    return ConfigSnapshot(
        root_path=root_path,
        content_root=content_root,
        collections=collections,
        connection=connection,
        build=build,
        output_mode=OutputMode.TYPESCRIPT if typescript else OutputMode.JAVASCRIPT,
        reference_depth=depth,
    )


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _parse_collection(raw: Any, where: str) -> CollectionConfig:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{where}: expected a mapping")
    name = raw.get("name")
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise ConfigurationError(f"{where}.name: expected an identifier", missing=["name"])
    path = raw.get("path")
    if not isinstance(path, str) or not path.strip("/"):
        raise ConfigurationError(f"{where}.path: required", missing=["path"])
    fmt = str(raw.get("format") or DEFAULT_FORMAT)
    if fmt not in CONTENT_FORMATS:
        raise ConfigurationError(
            f"{where}.format: '{fmt}' is not one of {', '.join(sorted(CONTENT_FORMATS))}"
        )
    fields = _parse_fields(raw.get("fields") or [], f"{where}.fields")
    body_fields = [f for f in fields if f.is_body]
    if len(body_fields) > 1:
        raise ConfigurationError(f"{where}.fields: only one field may set isBody")
    for fld in body_fields:
        if fld.type not in ("rich-text", "string") or fld.list:
            raise ConfigurationError(
                f"{where}.fields.{fld.name}: isBody requires a single string or rich-text field"
            )
    return CollectionConfig(
        name=name,
        path=path.strip("/"),
        label=str(raw.get("label") or name),
        format=fmt,
        fields=fields,
    )


def _parse_fields(raw_fields: Any, where: str) -> tuple[FieldConfig, ...]:
    if not isinstance(raw_fields, list):
        raise ConfigurationError(f"{where}: expected a list")
    seen: set[str] = set()
    result: list[FieldConfig] = []
    for i, raw in enumerate(raw_fields):
        loc = f"{where}[{i}]"
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{loc}: expected a mapping")
        name = raw.get("name")
        if not isinstance(name, str) or not _NAME_RE.match(name):
            raise ConfigurationError(f"{loc}.name: expected an identifier", missing=["name"])
        if name in _RESERVED_FIELDS:
            raise ConfigurationError(f"{loc}.name: '{name}' is reserved")
        if name in seen:
            raise ConfigurationError(f"{loc}.name: duplicate field '{name}'")
        seen.add(name)
        ftype = raw.get("type")
        if ftype not in FIELD_TYPES:
            raise ConfigurationError(
                f"{loc}.type: '{ftype}' is not one of {', '.join(sorted(FIELD_TYPES))}"
            )
        collections: tuple[str, ...] = ()
        if ftype == "reference":
            raw_colls = raw.get("collections")
            if not isinstance(raw_colls, list) or not raw_colls:
                raise ConfigurationError(
                    f"{loc}.collections: reference fields need at least one collection",
                    missing=["collections"],
                )
            collections = tuple(str(c) for c in raw_colls)
        sub_fields: tuple[FieldConfig, ...] = ()
        if ftype == "object":
            sub_fields = _parse_fields(raw.get("fields") or [], f"{loc}.fields")
            if not sub_fields:
                raise ConfigurationError(f"{loc}.fields: object fields need sub-fields")
        result.append(
            FieldConfig(
                name=name,
                type=ftype,
                label=str(raw.get("label") or name),
                required=bool(raw.get("required", False)),
                list=bool(raw.get("list", False)),
                is_body=bool(raw.get("isBody", False)),
                collections=collections,
                fields=sub_fields,
            )
        )
    return tuple(result)


def _check_collection_names(collections: tuple[CollectionConfig, ...]) -> None:
    seen: set[str] = set()
    for coll in collections:
        if coll.name in seen:
            raise ConfigurationError(f"schema.collections: duplicate collection '{coll.name}'")
        seen.add(coll.name)


def _check_references(collections: tuple[CollectionConfig, ...]) -> None:
    names = {c.name for c in collections}

    def _walk(fields: tuple[FieldConfig, ...], where: str) -> None:
        for fld in fields:
            for target in fld.collections:
                if target not in names:
                    raise ConfigurationError(
                        f"{where}.{fld.name}: references unknown collection '{target}'"
                    )
            _walk(fld.fields, f"{where}.{fld.name}")

    for coll in collections:
        _walk(coll.fields, coll.name)
