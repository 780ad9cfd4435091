"""Type generation: GraphQL schema + query documents -> typed client source.

The output is modelled as a list of :class:`CodeChunk` objects. Each chunk
carries its TypeScript text and, when it has runtime meaning, the same code
with annotations erased. Type-only chunks have no runtime form, so
"transpiling" to JavaScript is a matter of dropping them and picking the
runtime text of the rest.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from graphql import (
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    GraphQLEnumType,
    GraphQLError,
    GraphQLInputObjectType,
    GraphQLInterfaceType,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLScalarType,
    GraphQLUnionType,
    InlineFragmentNode,
    ListTypeNode,
    NonNullTypeNode,
    NoUnusedFragmentsRule,
    OperationDefinitionNode,
    Source,
    is_abstract_type,
    parse,
    print_ast,
    specified_rules,
    validate,
)

from contentloom.errors import CodegenError
from contentloom.globs import expand

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from graphql import (
        GraphQLNamedType,
        GraphQLOutputType,
        GraphQLSchema,
        SelectionSetNode,
        TypeNode,
    )

logger = logging.getLogger(__name__)

HEADER = "// DO NOT MODIFY THIS FILE. This file is automatically generated by contentloom"

_TS_SCALARS = {
    "ID": "string",
    "String": "string",
    "Boolean": "boolean",
    "Int": "number",
    "Float": "number",
    "JSON": "any",
}

_GQL_HELPER_TS = """\
export function gql(strings: TemplateStringsArray, ...args: string[]): string {
  let str = '';
  strings.forEach((string, i) => {
    str += string + (args[i] || '');
  });
  return str;
}"""

_GQL_HELPER_JS = """\
export function gql(strings, ...args) {
  let str = '';
  strings.forEach((string, i) => {
    str += string + (args[i] || '');
  });
  return str;
}"""

_UTILITY_TYPES = """\
export type Maybe<T> = T | null;
export type InputMaybe<T> = Maybe<T>;
export type Exact<T extends { [key: string]: unknown }> = { [K in keyof T]: T[K] };"""


@dataclass(frozen=True)
class CodeChunk:
    """One top-level declaration; ``runtime`` is ``None`` for type-only code."""

    typed: str
    runtime: str | None = None


@dataclass(frozen=True)
class TypeCode:
    chunks: tuple[CodeChunk, ...]

    def typed(self) -> str:
        return "\n\n".join(c.typed for c in self.chunks) + "\n"

    def runtime(self) -> str:
        return "\n\n".join(c.runtime for c in self.chunks if c.runtime is not None) + "\n"


def transpile(code: TypeCode) -> str:
    """Erase the TypeScript-only parts of *code*, leaving plain JavaScript."""
    return code.runtime()


# ---------------------------------------------------------------------------
# Document loading
# ---------------------------------------------------------------------------


def load_documents(paths: Sequence[Path], schema: GraphQLSchema) -> DocumentNode:
    """Parse, merge and validate every document in *paths*.

    Raises
    ------
    CodegenError
        On syntax errors, duplicate definition names, anonymous operations, or
        documents that do not validate against *schema*.
    """
    definitions = []
    origin: dict[str, Path] = {}
    for path in paths:
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            continue
        try:
            doc = parse(Source(text, str(path)))
        except GraphQLError as exc:
            raise CodegenError(f"{path.name}: {exc.message}") from exc
        for defn in doc.definitions:
            if not isinstance(defn, (OperationDefinitionNode, FragmentDefinitionNode)):
                continue
            if defn.name is None:
                raise CodegenError(f"{path.name}: operations must be named")
            key = f"{type(defn).__name__}:{defn.name.value}"
            if key in origin:
                raise CodegenError(
                    f"{path.name}: '{defn.name.value}' is already defined in {origin[key].name}"
                )
            origin[key] = path
            definitions.append(defn)

    document = DocumentNode(definitions=tuple(definitions))
    # Fragments may be defined for use outside the generated client.
    rules = [rule for rule in specified_rules if rule is not NoUnusedFragmentsRule]
    errors = validate(schema, document, rules)
    if errors:
        raise CodegenError("; ".join(err.message for err in errors))
    return document


# ---------------------------------------------------------------------------
# Schema type rendering
# ---------------------------------------------------------------------------


def _schema_ref(t: GraphQLOutputType, *, input_: bool = False) -> tuple[str, bool]:
    """Render a reference to a schema type; returns ``(text, nullable)``."""
    if isinstance(t, GraphQLNonNull):
        inner, _ = _schema_ref(t.of_type, input_=input_)
        return inner, False
    if isinstance(t, GraphQLList):
        inner, nullable = _schema_ref(t.of_type, input_=input_)
        maybe = "InputMaybe" if input_ else "Maybe"
        return f"Array<{maybe}<{inner}>>" if nullable else f"Array<{inner}>", True
    if isinstance(t, GraphQLScalarType):
        return f"Scalars['{t.name}']", True
    return t.name, True


def _render_schema_type(t: GraphQLNamedType) -> str | None:
    if isinstance(t, (GraphQLObjectType, GraphQLInterfaceType)):
        lines = [f"export type {t.name} = {{"]
        if isinstance(t, GraphQLObjectType):
            lines.append(f"  __typename?: '{t.name}';")
        for name, fld in t.fields.items():
            text, nullable = _schema_ref(fld.type)
            lines.append(f"  {name}?: Maybe<{text}>;" if nullable else f"  {name}: {text};")
        lines.append("};")
        return "\n".join(lines)
    if isinstance(t, GraphQLInputObjectType):
        lines = [f"export type {t.name} = {{"]
        for name, fld in t.fields.items():
            text, nullable = _schema_ref(fld.type, input_=True)
            lines.append(f"  {name}?: InputMaybe<{text}>;" if nullable else f"  {name}: {text};")
        lines.append("};")
        return "\n".join(lines)
    if isinstance(t, GraphQLUnionType):
        return f"export type {t.name} = {' | '.join(m.name for m in t.types)};"
    if isinstance(t, GraphQLEnumType):
        values = " | ".join(f"'{v}'" for v in t.values)
        return f"export type {t.name} = {values};"
    return None


def _scalars_chunk(schema: GraphQLSchema) -> str:
    lines = ["export type Scalars = {"]
    for name, t in schema.type_map.items():
        if isinstance(t, GraphQLScalarType) and not name.startswith("__"):
            lines.append(f"  {name}: {_TS_SCALARS.get(name, 'any')};")
    lines.append("};")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Selection rendering
# ---------------------------------------------------------------------------


class _SelectionRenderer:
    def __init__(self, schema: GraphQLSchema, fragments: dict[str, FragmentDefinitionNode]):
        self.schema = schema
        self.fragments = fragments

    def _applies(self, condition: str | None, obj: GraphQLObjectType) -> bool:
        if condition is None or condition == obj.name:
            return True
        cond = self.schema.get_type(condition)
        return cond is not None and is_abstract_type(cond) and self.schema.is_sub_type(cond, obj)

    def _collect(
        self,
        obj: GraphQLObjectType,
        selection_sets: Iterable[SelectionSetNode],
        out: dict[str, list[FieldNode]],
    ) -> None:
        for selection_set in selection_sets:
            for sel in selection_set.selections:
                if isinstance(sel, FieldNode):
                    key = sel.alias.value if sel.alias else sel.name.value
                    out.setdefault(key, []).append(sel)
                elif isinstance(sel, FragmentSpreadNode):
                    frag = self.fragments[sel.name.value]
                    if self._applies(frag.type_condition.name.value, obj):
                        self._collect(obj, [frag.selection_set], out)
                elif isinstance(sel, InlineFragmentNode):
                    cond = sel.type_condition.name.value if sel.type_condition else None
                    if self._applies(cond, obj):
                        self._collect(obj, [sel.selection_set], out)

    def render_object(
        self, obj: GraphQLObjectType, selection_sets: Sequence[SelectionSetNode], indent: int
    ) -> str:
        fields: dict[str, list[FieldNode]] = {}
        self._collect(obj, selection_sets, fields)
        pad = "  " * (indent + 1)
        lines = ["{"]
        for key, nodes in fields.items():
            name = nodes[0].name.value
            if name == "__typename":
                lines.append(f"{pad}{key}: '{obj.name}';")
                continue
            sub_sets = [n.selection_set for n in nodes if n.selection_set is not None]
            text, nullable = self.render_type(obj.fields[name].type, sub_sets, indent + 1)
            lines.append(f"{pad}{key}?: {text} | null;" if nullable else f"{pad}{key}: {text};")
        lines.append("  " * indent + "}")
        return "\n".join(lines)

    def render_type(
        self, t: GraphQLOutputType, selection_sets: Sequence[SelectionSetNode], indent: int
    ) -> tuple[str, bool]:
        if isinstance(t, GraphQLNonNull):
            text, _ = self.render_type(t.of_type, selection_sets, indent)
            return text, False
        if isinstance(t, GraphQLList):
            text, nullable = self.render_type(t.of_type, selection_sets, indent)
            return (f"Array<{text} | null>" if nullable else f"Array<{text}>"), True
        if isinstance(t, GraphQLScalarType):
            return _TS_SCALARS.get(t.name, "any"), True
        if isinstance(t, GraphQLEnumType):
            return t.name, True
        if isinstance(t, GraphQLObjectType):
            return self.render_object(t, selection_sets, indent), True
        possible = self.schema.get_possible_types(t)
        variants = [self.render_object(p, selection_sets, indent) for p in possible]
        if len(variants) == 1:
            return variants[0], True
        return "(" + " | ".join(variants) + ")", True

    def render_named(
        self, type_name: str, selection_set: SelectionSetNode, indent: int = 0
    ) -> str:
        t = self.schema.get_type(type_name)
        text, _ = self.render_type(t, [selection_set], indent)  # type: ignore[arg-type]
        return text


def _variable_type(node: TypeNode) -> tuple[str, bool]:
    if isinstance(node, NonNullTypeNode):
        text, _ = _variable_type(node.type)
        return text, False
    if isinstance(node, ListTypeNode):
        text, nullable = _variable_type(node.type)
        return (f"Array<InputMaybe<{text}>>" if nullable else f"Array<{text}>"), True
    name = node.name.value  # type: ignore[attr-defined]
    return (f"Scalars['{name}']" if name in _TS_SCALARS else name), True


def _used_fragments(
    node: OperationDefinitionNode | FragmentDefinitionNode,
    fragments: dict[str, FragmentDefinitionNode],
) -> list[str]:
    """Names of every fragment *node* spreads, transitively, sorted."""
    seen: set[str] = set()
    stack = [node.selection_set]
    while stack:
        selection_set = stack.pop()
        for sel in selection_set.selections:
            if isinstance(sel, FragmentSpreadNode):
                if sel.name.value not in seen:
                    seen.add(sel.name.value)
                    stack.append(fragments[sel.name.value].selection_set)
            elif sel.selection_set is not None:  # type: ignore[union-attr]
                stack.append(sel.selection_set)  # type: ignore[union-attr]
    if isinstance(node, FragmentDefinitionNode):
        seen.discard(node.name.value)
    return sorted(seen)


def _pascal(name: str) -> str:
    return name[:1].upper() + name[1:]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def generate_types(
    schema: GraphQLSchema,
    query_globs: Sequence[str],
    fragment_globs: Sequence[str],
    api_url: str,
) -> TypeCode:
    """Generate typed client code for every operation in the glob-matched documents.

    *fragment_globs* match the generated canonical documents; *query_globs*
    match user-authored ones. Both feed one merged, validated document.
    """
    generated = expand(fragment_globs)
    paths = generated + [p for p in expand(query_globs) if p not in generated]
    document = load_documents(paths, schema)
    fragments = {
        d.name.value: d for d in document.definitions if isinstance(d, FragmentDefinitionNode)
    }
    operations = [d for d in document.definitions if isinstance(d, OperationDefinitionNode)]
    renderer = _SelectionRenderer(schema, fragments)

    chunks: list[CodeChunk] = [
        CodeChunk(f"//@ts-nocheck\n{HEADER}\n{_GQL_HELPER_TS}", f"{HEADER}\n{_GQL_HELPER_JS}"),
        CodeChunk(_UTILITY_TYPES),
        CodeChunk(_scalars_chunk(schema)),
    ]
    for name in sorted(schema.type_map):
        if name.startswith("__"):
            continue
        rendered = _render_schema_type(schema.type_map[name])
        if rendered:
            chunks.append(CodeChunk(rendered))

    for frag in fragments.values():
        body = renderer.render_named(frag.type_condition.name.value, frag.selection_set)
        chunks.append(CodeChunk(f"export type {frag.name.value}Fragment = {body};"))

    for op in operations:
        base = _pascal(op.name.value) + _pascal(op.operation.value)  # type: ignore[union-attr]
        var_lines = []
        for var in op.variable_definitions:
            text, nullable = _variable_type(var.type)
            vname = var.variable.name.value
            var_lines.append(
                f"  {vname}?: InputMaybe<{text}>;" if nullable else f"  {vname}: {text};"
            )
        if var_lines:
            variables = "{\n" + "\n".join(var_lines) + "\n}"
        else:
            variables = "{ [key: string]: never }"
        root = schema.get_root_type(op.operation)
        result = renderer.render_object(root, [op.selection_set], 0)  # type: ignore[arg-type]
        chunks.append(
            CodeChunk(
                f"export type {base}Variables = Exact<{variables}>;\n\n"
                f"export type {base} = {result};"
            )
        )

    for frag in fragments.values():
        text = f"export const {frag.name.value}FragmentDoc = gql`\n{print_ast(frag)}\n`;"
        chunks.append(CodeChunk(text, text))
    for op in operations:
        refs = "".join(
            f"\n${{{name}FragmentDoc}}" for name in _used_fragments(op, fragments)
        )
        text = (
            f"export const {_pascal(op.name.value)}Document = gql`\n"  # type: ignore[union-attr]
            f"{print_ast(op)}{refs}\n`;"
        )
        chunks.append(CodeChunk(text, text))

    chunks.append(_sdk_chunk(operations))
    chunks.append(_requester_chunk(api_url))
    return TypeCode(tuple(chunks))


def _sdk_chunk(operations: Sequence[OperationDefinitionNode]) -> CodeChunk:
    typed = [
        "export type Requester<C = {}> = "
        "<R, V>(doc: string, vars?: V, options?: C) => Promise<R>;",
        "export function getSdk<C>(requester: Requester<C>) {",
        "  return {",
    ]
    runtime = ["export function getSdk(requester) {", "  return {"]
    for op in operations:
        name = op.name.value  # type: ignore[union-attr]
        base = _pascal(name) + _pascal(op.operation.value)
        doc = f"{_pascal(name)}Document"
        ret = f"{{ data: {base}; variables: {base}Variables; query: string }}"
        typed += [
            f"    {name}(variables: {base}Variables, options?: C): Promise<{ret}> {{",
            f"      return requester<{ret}, {base}Variables>({doc}, variables, options);",
            "    },",
        ]
        runtime += [
            f"    {name}(variables, options) {{",
            f"      return requester({doc}, variables, options);",
            "    },",
        ]
    typed += ["  };", "}", "export type Sdk = ReturnType<typeof getSdk>;"]
    runtime += ["  };", "}"]
    return CodeChunk("\n".join(typed), "\n".join(runtime))


def _requester_chunk(api_url: str) -> CodeChunk:
    typed = f"""\
type RequestClient = {{
  request: (args: {{ query: string; variables?: unknown; url?: string }}) => Promise<any>;
}};

const generateRequester = (client: RequestClient, options?: {{ url?: string }}) => {{
  const requester: Requester<{{}}> = async (doc, vars, _options) => {{
    const url = options?.url ?? '{api_url}';
    const {{ data }} = await client.request({{ query: doc, variables: vars, url }});
    return {{ data: data?.data, query: doc, variables: vars || {{}} }} as any;
  }};
  return requester;
}};

export const queries = (client: RequestClient, options?: {{ url?: string }}) => {{
  const requester = generateRequester(client, options);
  return getSdk(requester);
}};"""
    runtime = f"""\
const generateRequester = (client, options) => {{
  const requester = async (doc, vars, _options) => {{
    const url = options?.url ?? '{api_url}';
    const {{ data }} = await client.request({{ query: doc, variables: vars, url }});
    return {{ data: data?.data, query: doc, variables: vars || {{}} }};
  }};
  return requester;
}};

export const queries = (client, options) => {{
  const requester = generateRequester(client, options);
  return getSdk(requester);
}};"""
    return CodeChunk(typed, runtime)
