"""Immutable configuration snapshot: collections, connection and build settings."""

from __future__ import annotations

import enum
import glob
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

FIELD_TYPES = frozenset(
    {
        "string",
        "number",
        "boolean",
        "datetime",
        "image",
        "rich-text",
        "reference",
        "object",
    }
)

CONTENT_FORMATS = frozenset({"md", "mdx", "markdown", "json", "yaml", "yml", "toml"})

DEFAULT_FORMAT = "md"
DEFAULT_REFERENCE_DEPTH = 2


class OutputMode(enum.Enum):
    """Flavor of the generated client and type files."""

    TYPESCRIPT = "ts"
    JAVASCRIPT = "js"


@dataclass(frozen=True)
class FieldConfig:
    """A single field of a collection (or of a nested object field)."""

    name: str
    type: str
    label: str = ""
    required: bool = False
    list: bool = False
    is_body: bool = False
    collections: tuple[str, ...] = ()
    fields: tuple[FieldConfig, ...] = ()


@dataclass(frozen=True)
class CollectionConfig:
    """A collection of content files sharing a root path and a file format."""

    name: str
    path: str
    label: str = ""
    format: str = DEFAULT_FORMAT
    fields: tuple[FieldConfig, ...] = ()

    @property
    def body_field(self) -> FieldConfig | None:
        for fld in self.fields:
            if fld.is_body:
                return fld
        return None


@dataclass(frozen=True)
class ConnectionConfig:
    """Parameters used to resolve the content API URL."""

    branch: str | None = None
    client_id: str | None = None
    token: str | None = None
    content_api_url_override: str | None = None
    cloud_url_override: str | None = None


@dataclass(frozen=True)
class BuildConfig:
    """Where the admin HTML entry point is written."""

    public_folder: str = "public"
    output_folder: str = "admin"


@dataclass(frozen=True)
class ConfigSnapshot:
    """Resolved user configuration as of one successful load.

    Replaced wholesale on every full reconcile, never mutated.
    """

    root_path: Path
    content_root: Path
    collections: tuple[CollectionConfig, ...]
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    output_mode: OutputMode = OutputMode.TYPESCRIPT
    reference_depth: int = DEFAULT_REFERENCE_DEPTH

    def collection(self, name: str) -> CollectionConfig:
        for coll in self.collections:
            if coll.name == name:
                return coll
        raise KeyError(name)

    @property
    def has_separate_content_root(self) -> bool:
        return self.content_root != self.root_path

    def content_globs(self) -> tuple[str, ...]:
        """Glob patterns (absolute, POSIX) matching every collection's content files.

        The root and collection paths are escaped, so only the suffix is a wildcard.
        """
        root = glob.escape(self.content_root.as_posix().rstrip("/"))
        return tuple(
            f"{root}/{glob.escape(coll.path.strip('/'))}/**/*.{coll.format}"
            for coll in self.collections
        )
