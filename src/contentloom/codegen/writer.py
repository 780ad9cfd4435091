"""Artifact writer: the only code that touches generated files on disk."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from typing import TYPE_CHECKING, Any

from contentloom.config.models import OutputMode

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from contentloom.config.manager import ConfigManager

logger = logging.getLogger(__name__)


class ArtifactName(enum.Enum):
    """Named generated artifacts; which file each maps to depends on the mode."""

    SCHEMA_DOC = "schema-doc"
    QUERY_DOC = "query-doc"
    FRAGMENT_DOC = "fragment-doc"
    CLIENT_CODE = "client-code"
    TYPE_CODE = "type-code"
    TYPE_DECLARATIONS = "type-declarations"
    TYPE_RUNTIME = "type-runtime"


def _write_if_changed(path: Path, content: str) -> bool:
    data = content.encode("utf-8")
    if path.is_file() and path.read_bytes() == data:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_bytes(data)
    tmp.replace(path)
    return True


def _unlink_if_exists(path: Path) -> bool:
    if path.is_file():
        path.unlink()
        return True
    return False


class ArtifactWriter:
    """Writes generated files idempotently and keeps mode-specific files exclusive."""

    def __init__(self, config_manager: ConfigManager) -> None:
        self.config_manager = config_manager

    # -- locations ----------------------------------------------------------

    def shared_locations(self) -> dict[ArtifactName, Path]:
        cm = self.config_manager
        return {
            ArtifactName.QUERY_DOC: cm.generated_queries_file_path,
            ArtifactName.FRAGMENT_DOC: cm.generated_fragments_file_path,
            ArtifactName.SCHEMA_DOC: cm.generated_graphql_gql_path,
        }

    def mode_locations(self, mode: OutputMode) -> dict[ArtifactName, Path]:
        cm = self.config_manager
        if mode is OutputMode.TYPESCRIPT:
            return {
                ArtifactName.TYPE_CODE: cm.generated_types_ts_file_path,
                ArtifactName.CLIENT_CODE: cm.generated_client_ts_file_path,
            }
        return {
            ArtifactName.TYPE_DECLARATIONS: cm.generated_types_d_file_path,
            ArtifactName.TYPE_RUNTIME: cm.generated_types_js_file_path,
            ArtifactName.CLIENT_CODE: cm.generated_client_js_file_path,
        }

    def location(self, name: ArtifactName, mode: OutputMode) -> Path:
        locations = {**self.shared_locations(), **self.mode_locations(mode)}
        try:
            return locations[name]
        except KeyError:
            raise ValueError(f"{name.value} has no file in {mode.value} mode") from None

    # -- writes -------------------------------------------------------------

    async def write(self, path: Path, content: str) -> bool:
        """Write *content* to *path*; returns ``False`` when the file already matched."""
        changed = await asyncio.to_thread(_write_if_changed, path, content)
        if changed:
            logger.debug("Wrote %s", self.config_manager.print_relative_path(path))
        return changed

    async def write_json(self, path: Path, data: Any) -> bool:
        return await self.write(path, json.dumps(data, ensure_ascii=False, indent=2) + "\n")

    async def remove(self, path: Path) -> bool:
        removed = await asyncio.to_thread(_unlink_if_exists, path)
        if removed:
            logger.debug("Removed %s", self.config_manager.print_relative_path(path))
        return removed

    async def write_artifact(self, name: ArtifactName, mode: OutputMode, content: str) -> bool:
        return await self.write(self.location(name, mode), content)

    async def write_mode_artifacts(
        self, mode: OutputMode, contents: Mapping[ArtifactName, str]
    ) -> None:
        """Write this mode's files, then delete every file that belongs to the other mode."""
        wanted = self.mode_locations(mode)
        missing = set(wanted) - set(contents)
        if missing:
            names = ", ".join(sorted(n.value for n in missing))
            raise ValueError(f"missing content for {names} in {mode.value} mode")
        for name, path in wanted.items():
            await self.write(path, contents[name])
        for other in OutputMode:
            if other is mode:
                continue
            for path in self.mode_locations(other).values():
                if path not in wanted.values():
                    await self.remove(path)

    async def remove_generated_code(self) -> None:
        """Delete every client, type, query and fragment file of both modes."""
        paths = {
            self.config_manager.generated_queries_file_path,
            self.config_manager.generated_fragments_file_path,
        }
        for mode in OutputMode:
            paths.update(self.mode_locations(mode).values())
        for path in sorted(paths):
            await self.remove(path)
