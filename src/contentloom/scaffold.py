"""``contentloom init``: lay down a minimal, working project."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from contentloom.config.manager import CONFIG_FOLDER, LEGACY_CONFIG_FOLDER

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

SAMPLE_CONFIG = """\
# contentloom configuration.
# branch, clientId and token are only needed to talk to the hosted content API.
branch:
clientId:
token:

build:
  publicFolder: public
  outputFolder: admin

client:
  referenceDepth: 2

schema:
  collections:
    - name: post
      label: Posts
      path: content/posts
      format: md
      fields:
        - name: title
          type: string
          label: Title
          required: true
        - name: date
          type: datetime
        - name: body
          type: rich-text
          isBody: true
"""

SAMPLE_POST = """\
---
title: Hello, World!
date: 2024-01-01T00:00:00.000Z
---

This is your first post. Edit it, and contentloom picks up the change.
"""

SAMPLE_QUERY = """\
# Queries and fragments in this folder are added to the generated client.
query postList {
  postConnection {
    edges {
      node {
        ...PostParts
      }
    }
  }
}
"""

GITIGNORE = "__generated__/\n"


@dataclass
class ScaffoldResult:
    created: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def _write_new(path: Path, content: str, result: ScaffoldResult) -> None:
    if path.exists():
        result.skipped.append(path)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    result.created.append(path)


def init_project(root: Path) -> ScaffoldResult:
    """Create the config folder, a sample collection and post, and a queries folder.

    Existing files are never overwritten.
    """
    result = ScaffoldResult()
    if (root / LEGACY_CONFIG_FOLDER).is_dir() and not (root / CONFIG_FOLDER).is_dir():
        config_folder = root / LEGACY_CONFIG_FOLDER
        logger.warning("Using legacy config folder %s", LEGACY_CONFIG_FOLDER)
    else:
        config_folder = root / CONFIG_FOLDER

    _write_new(config_folder / "config.yml", SAMPLE_CONFIG, result)
    _write_new(config_folder / ".gitignore", GITIGNORE, result)
    _write_new(config_folder / "queries" / "posts.graphql", SAMPLE_QUERY, result)
    # Content paths in the config are relative to the project root.
    _write_new(root / "content" / "posts" / "hello-world.md", SAMPLE_POST, result)
    return result
