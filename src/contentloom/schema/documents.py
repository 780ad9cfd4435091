"""Canonical query and fragment documents derived from the collection definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from graphql import parse, print_ast

if TYPE_CHECKING:
    from contentloom.config.models import CollectionConfig, ConfigSnapshot, FieldConfig

_SYS_SELECTION = (
    "... on Document { _sys { filename basename breadcrumbs path relativePath extension } id }"
)


def type_name(name: str) -> str:
    """``blog_post`` -> ``BlogPost``; already-cased names keep their inner capitals."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def _select_fields(
    config: ConfigSnapshot, fields: tuple[FieldConfig, ...], depth: int
) -> list[str]:
    out: list[str] = ["__typename"]
    for fld in fields:
        if fld.type == "reference":
            out.append(f"{fld.name} {{ {_select_reference(config, fld, depth)} }}")
        elif fld.type == "object":
            inner = " ".join(_select_fields(config, fld.fields, depth))
            out.append(f"{fld.name} {{ {inner} }}")
        else:
            out.append(fld.name)
    return out


def _select_reference(config: ConfigSnapshot, fld: FieldConfig, depth: int) -> str:
    """Expand a reference one level per unit of *depth*; at zero only ids remain."""
    parts: list[str] = []
    if depth > 0:
        for target_name in fld.collections:
            target = config.collection(target_name)
            inner = " ".join(_select_fields(config, target.fields, depth - 1))
            parts.append(f"... on {type_name(target.name)} {{ {inner} }}")
    parts.append(_SYS_SELECTION)
    return " ".join(parts)


def fragment_name(coll: CollectionConfig) -> str:
    return f"{type_name(coll.name)}Parts"


def build_fragment_doc(config: ConfigSnapshot) -> str:
    frags = []
    for coll in config.collections:
        selection = " ".join(_select_fields(config, coll.fields, config.reference_depth))
        frags.append(f"fragment {fragment_name(coll)} on {type_name(coll.name)} {{ {selection} }}")
    return print_ast(parse("\n".join(frags))) + "\n"


def build_query_doc(config: ConfigSnapshot) -> str:
    queries = []
    for coll in config.collections:
        name = coll.name
        parts = f"{_SYS_SELECTION} ...{fragment_name(coll)}"
        queries.append(
            f"query {name}($relativePath: String!) {{ "
            f"{name}(relativePath: $relativePath) {{ {parts} }} }}"
        )
        queries.append(
            f"query {name}Connection($first: Int, $after: String) {{ "
            f"{name}Connection(first: $first, after: $after) {{ "
            f"totalCount edges {{ cursor node {{ {parts} }} }} }} }}"
        )
    return print_ast(parse("\n".join(queries))) + "\n"


def build_documents(config: ConfigSnapshot) -> tuple[str, str]:
    """Return ``(query_doc, frag_doc)`` for *config*."""
    return build_query_doc(config), build_fragment_doc(config)
