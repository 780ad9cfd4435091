"""Content file parsing and serialization (front matter Markdown, JSON, YAML, TOML)."""

from __future__ import annotations

import datetime as dt
import json
import re
import tomllib
from typing import Any

import yaml

_MARKDOWN_FORMATS = frozenset({"md", "mdx", "markdown"})

# Front matter block at the very top of a Markdown file.
_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


class ContentParseError(ValueError):
    """Raised when a content file cannot be decoded in its declared format."""


def _normalize(value: Any) -> Any:
    """Convert YAML/TOML dates to ISO strings so values stay JSON-serializable."""
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    return value


def parse_content(text: str, fmt: str, *, body_field: str | None = None) -> dict[str, Any]:
    """Decode *text* according to *fmt* and return its field values.

    For Markdown formats the part after the front matter is stored under
    *body_field* when one is given, and dropped otherwise.
    """
    try:
        if fmt in _MARKDOWN_FORMATS:
            data, body = _split_front_matter(text)
            if body_field:
                data[body_field] = body
        elif fmt == "json":
            data = json.loads(text) if text.strip() else {}
        elif fmt in ("yaml", "yml"):
            data = yaml.safe_load(text) or {}
        elif fmt == "toml":
            data = tomllib.loads(text)
        else:
            raise ContentParseError(f"unsupported format '{fmt}'")
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise ContentParseError(str(exc)) from exc

    if not isinstance(data, dict):
        raise ContentParseError(f"expected a mapping at the top level, got {type(data).__name__}")
    normalized: dict[str, Any] = _normalize(data)
    return normalized


def _split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    match = _FRONT_MATTER_RE.match(text)
    if match is None:
        return {}, text.strip("\n")
    data = yaml.safe_load(match.group(1)) or {}
    if not isinstance(data, dict):
        raise ContentParseError("front matter must be a mapping")
    return data, text[match.end() :].strip("\n")


def serialize_content(data: dict[str, Any], fmt: str, *, body_field: str | None = None) -> str:
    """Inverse of :func:`parse_content`, used when the dev server writes documents."""
    if fmt in _MARKDOWN_FORMATS:
        values = dict(data)
        body = str(values.pop(body_field, "") or "") if body_field else ""
        front = yaml.safe_dump(values, sort_keys=False, allow_unicode=True) if values else ""
        head = f"---\n{front}---\n" if front else ""
        return f"{head}\n{body}\n" if body else head
    if fmt == "json":
        return json.dumps(data, ensure_ascii=False, indent=2) + "\n"
    if fmt in ("yaml", "yml"):
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    if fmt == "toml":
        return _dump_toml(data)
    raise ContentParseError(f"unsupported format '{fmt}'")


def _dump_toml(data: dict[str, Any], prefix: str = "") -> str:
    # Scalars and scalar lists first, then tables; enough for content documents.
    lines: list[str] = []
    tables: list[tuple[str, dict[str, Any]]] = []
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            tables.append((f"{prefix}{key}", value))
        else:
            lines.append(f"{key} = {json.dumps(value, ensure_ascii=False)}")
    out = "\n".join(lines)
    for name, table in tables:
        out += f"\n\n[{name}]\n" + _dump_toml(table, prefix=f"{name}.")
    return out.strip("\n") + "\n"
