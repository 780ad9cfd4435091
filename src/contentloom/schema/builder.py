"""Schema builder: turn a config snapshot into a GraphQL schema plus its side documents.

The builder is a pure function of the configuration. It produces:

* the executable :class:`graphql.GraphQLSchema` (with resolvers bound to the
  content index through ``info.context``);
* the canonical query and fragment documents used by codegen;
* three JSON documents persisted next to the generated code: the serialized
  schema definition, the type lookup table and the raw GraphQL introspection.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from graphql import (
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLField,
    GraphQLFloat,
    GraphQLID,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLInt,
    GraphQLInterfaceType,
    GraphQLList,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLScalarType,
    GraphQLSchema,
    GraphQLString,
    GraphQLUnionType,
    introspection_from_schema,
    print_schema,
    validate_schema,
)
from graphql.utilities import value_from_ast_untyped

from contentloom import __version__
from contentloom.errors import SchemaBuildError
from contentloom.schema import resolvers
from contentloom.schema.documents import build_documents, type_name

if TYPE_CHECKING:
    from graphql import GraphQLInputType, GraphQLOutputType

    from contentloom.codegen.writer import ArtifactWriter
    from contentloom.config.manager import ConfigManager
    from contentloom.config.models import CollectionConfig, ConfigSnapshot, FieldConfig
    from contentloom.content.indexer import ContentIndexer

logger = logging.getLogger(__name__)

JSONScalar = GraphQLScalarType(
    name="JSON",
    description="Arbitrary JSON value",
    serialize=lambda value: value,
    parse_value=lambda value: value,
    parse_literal=lambda node, variables=None: value_from_ast_untyped(node, variables),
)

_SCALARS = {
    "string": GraphQLString,
    "datetime": GraphQLString,
    "image": GraphQLString,
    "rich-text": GraphQLString,
    "number": GraphQLFloat,
    "boolean": GraphQLBoolean,
}


@dataclass(frozen=True)
class SchemaArtifact:
    """Output of one schema build; read-only once handed to codegen."""

    config: ConfigSnapshot
    graphql_schema: GraphQLSchema
    query_doc: str
    frag_doc: str
    schema: dict[str, Any]
    lookup: dict[str, Any]
    graphql: dict[str, Any]

    @property
    def sdl(self) -> str:
        return print_schema(self.graphql_schema)


# ---------------------------------------------------------------------------
# GraphQL type construction
# ---------------------------------------------------------------------------


class _TypeFactory:
    """Builds (and memoizes) every named type for one snapshot."""

    def __init__(self, config: ConfigSnapshot) -> None:
        self.config = config
        self.types: dict[str, Any] = {}
        self.lookup: dict[str, Any] = {}

        self.system_info = GraphQLObjectType(
            "SystemInfo",
            lambda: {
                "filename": GraphQLField(GraphQLNonNull(GraphQLString)),
                "basename": GraphQLField(GraphQLNonNull(GraphQLString)),
                "breadcrumbs": GraphQLField(
                    GraphQLNonNull(GraphQLList(GraphQLNonNull(GraphQLString)))
                ),
                "path": GraphQLField(GraphQLNonNull(GraphQLString)),
                "relativePath": GraphQLField(GraphQLNonNull(GraphQLString)),
                "extension": GraphQLField(GraphQLNonNull(GraphQLString)),
                "collection": GraphQLField(GraphQLNonNull(GraphQLString)),
            },
        )
        self.node = GraphQLInterfaceType(
            "Node",
            {"id": GraphQLField(GraphQLNonNull(GraphQLID))},
            resolve_type=resolvers.resolve_typename,
        )
        self.document = GraphQLInterfaceType(
            "Document",
            lambda: {
                "id": GraphQLField(GraphQLNonNull(GraphQLID)),
                "_sys": GraphQLField(GraphQLNonNull(self.system_info)),
                "_values": GraphQLField(GraphQLNonNull(JSONScalar)),
            },
            interfaces=[self.node],
            resolve_type=resolvers.resolve_typename,
        )
        self.lookup["DocumentNode"] = {"type": "Document", "resolveType": "nodeDocument"}

    # -- output types -------------------------------------------------------

    def collection_type(self, coll: CollectionConfig) -> GraphQLObjectType:
        name = type_name(coll.name)
        if name in self.types:
            return self.types[name]

        def fields() -> dict[str, GraphQLField]:
            result = {
                "id": GraphQLField(GraphQLNonNull(GraphQLID)),
                "_sys": GraphQLField(GraphQLNonNull(self.system_info)),
                "_values": GraphQLField(GraphQLNonNull(JSONScalar)),
            }
            for fld in coll.fields:
                result[fld.name] = self.output_field(name, fld)
            return result

        obj = GraphQLObjectType(
            name,
            fields,
            interfaces=[self.node, self.document],
            description=coll.label,
        )
        self.types[name] = obj
        self.lookup[name] = {
            "type": name,
            "resolveType": "collectionDocument",
            "collection": coll.name,
            "createDocument": "create",
            "updateDocument": "update",
        }
        return obj

    def connection_type(self, coll: CollectionConfig) -> GraphQLObjectType:
        node_type = self.collection_type(coll)
        name = f"{node_type.name}Connection"
        edges = GraphQLObjectType(
            f"{name}Edges",
            {
                "cursor": GraphQLField(GraphQLNonNull(GraphQLString)),
                "node": GraphQLField(node_type),
            },
        )
        conn = GraphQLObjectType(
            name,
            {
                "totalCount": GraphQLField(GraphQLNonNull(GraphQLFloat)),
                "edges": GraphQLField(GraphQLList(edges)),
            },
        )
        self.types[name] = conn
        self.lookup[name] = {
            "type": name,
            "resolveType": "collectionDocumentList",
            "collection": coll.name,
        }
        return conn

    def output_field(self, parent: str, fld: FieldConfig) -> GraphQLField:
        inner: GraphQLOutputType
        resolve = None
        if fld.type == "reference":
            inner = self.reference_type(parent, fld)
            resolve = resolvers.reference_list if fld.list else resolvers.reference
        elif fld.type == "object":
            inner = self.object_type(parent, fld)
        else:
            inner = _SCALARS[fld.type]
        return GraphQLField(_wrap_output(inner, fld), resolve=resolve, description=fld.label)

    def reference_type(self, parent: str, fld: FieldConfig) -> GraphQLOutputType:
        targets = [self.collection_type(self.config.collection(c)) for c in fld.collections]
        if len(targets) == 1:
            return targets[0]
        name = f"{parent}{type_name(fld.name)}"
        if name not in self.types:
            self.types[name] = GraphQLUnionType(
                name, targets, resolve_type=resolvers.resolve_typename
            )
            self.lookup[name] = {
                "type": name,
                "resolveType": "unionData",
                "typeMap": {c: type_name(c) for c in fld.collections},
            }
        return self.types[name]

    def object_type(self, parent: str, fld: FieldConfig) -> GraphQLObjectType:
        name = f"{parent}{type_name(fld.name)}"
        if name not in self.types:
            self.types[name] = GraphQLObjectType(
                name,
                lambda: {sub.name: self.output_field(name, sub) for sub in fld.fields},
            )
        return self.types[name]

    # -- input types --------------------------------------------------------

    def mutation_input(self, coll: CollectionConfig) -> GraphQLInputObjectType:
        return self._input_object(f"{type_name(coll.name)}Mutation", coll.fields)

    def _input_object(
        self, name: str, fields: tuple[FieldConfig, ...]
    ) -> GraphQLInputObjectType:
        if name in self.types:
            return self.types[name]

        def build() -> dict[str, GraphQLInputField]:
            result: dict[str, GraphQLInputField] = {}
            for fld in fields:
                inner: GraphQLInputType
                if fld.type == "object":
                    base = name.removesuffix("Mutation")
                    inner = self._input_object(f"{base}{type_name(fld.name)}Mutation", fld.fields)
                elif fld.type == "reference":
                    inner = GraphQLString
                else:
                    inner = _SCALARS[fld.type]
                result[fld.name] = GraphQLInputField(GraphQLList(inner) if fld.list else inner)
            return result

        obj = GraphQLInputObjectType(name, build)
        self.types[name] = obj
        return obj


def _wrap_output(inner: GraphQLOutputType, fld: FieldConfig) -> GraphQLOutputType:
    if fld.list:
        wrapped: GraphQLOutputType = GraphQLList(inner)
        return GraphQLNonNull(wrapped) if fld.required else wrapped
    return GraphQLNonNull(inner) if fld.required else inner


def build_graphql_schema(config: ConfigSnapshot) -> tuple[GraphQLSchema, dict[str, Any]]:
    """Build the executable schema and its lookup table for *config*."""
    factory = _TypeFactory(config)
    relative_path = {"relativePath": GraphQLArgument(GraphQLNonNull(GraphQLString))}

    query_fields: dict[str, GraphQLField] = {
        "document": GraphQLField(
            GraphQLNonNull(factory.document),
            args={
                "collection": GraphQLArgument(GraphQLNonNull(GraphQLString)),
                **relative_path,
            },
            resolve=resolvers.document,
        ),
    }
    mutation_fields: dict[str, GraphQLField] = {
        "deleteDocument": GraphQLField(
            factory.document,
            args={
                "collection": GraphQLArgument(GraphQLNonNull(GraphQLString)),
                **relative_path,
            },
            resolve=resolvers.delete_document,
        ),
    }
    for coll in config.collections:
        obj = factory.collection_type(coll)
        conn = factory.connection_type(coll)
        params = factory.mutation_input(coll)
        query_fields[coll.name] = GraphQLField(
            GraphQLNonNull(obj),
            args=relative_path,
            resolve=resolvers.collection_document(coll.name),
        )
        query_fields[f"{coll.name}Connection"] = GraphQLField(
            GraphQLNonNull(conn),
            args={
                "first": GraphQLArgument(GraphQLInt),
                "after": GraphQLArgument(GraphQLString),
            },
            resolve=resolvers.collection_connection(coll.name),
        )
        mutation_args = {**relative_path, "params": GraphQLArgument(GraphQLNonNull(params))}
        mutation_fields[f"update{obj.name}"] = GraphQLField(
            GraphQLNonNull(obj),
            args=mutation_args,
            resolve=resolvers.write_document(coll.name, create=False),
        )
        mutation_fields[f"create{obj.name}"] = GraphQLField(
            GraphQLNonNull(obj),
            args=mutation_args,
            resolve=resolvers.write_document(coll.name, create=True),
        )

    schema = GraphQLSchema(
        query=GraphQLObjectType("Query", query_fields),
        mutation=GraphQLObjectType("Mutation", mutation_fields),
        types=[factory.types[k] for k in sorted(factory.types)],
    )
    errors = validate_schema(schema)
    if errors:
        raise SchemaBuildError("; ".join(err.message for err in errors))
    return schema, factory.lookup


# ---------------------------------------------------------------------------
# Serialized schema definition
# ---------------------------------------------------------------------------


def _field_to_dict(fld: FieldConfig) -> dict[str, Any]:
    data: dict[str, Any] = {"name": fld.name, "type": fld.type, "label": fld.label}
    if fld.required:
        data["required"] = True
    if fld.list:
        data["list"] = True
    if fld.is_body:
        data["isBody"] = True
    if fld.collections:
        data["collections"] = list(fld.collections)
    if fld.fields:
        data["fields"] = [_field_to_dict(sub) for sub in fld.fields]
    return data


def serialize_schema(config: ConfigSnapshot) -> dict[str, Any]:
    """JSON-ready view of the collection definitions, without machine-local paths."""
    return {
        "version": {"fullVersion": __version__},
        "config": {"referenceDepth": config.reference_depth},
        "collections": [
            {
                "name": coll.name,
                "label": coll.label,
                "path": coll.path,
                "format": coll.format,
                "fields": [_field_to_dict(fld) for fld in coll.fields],
            }
            for coll in config.collections
        ],
    }


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class SchemaBuilder:
    """Builds :class:`SchemaArtifact` objects and persists their JSON side files."""

    def __init__(self, config_manager: ConfigManager, writer: ArtifactWriter) -> None:
        self.config_manager = config_manager
        self.writer = writer

    async def build(self, index: ContentIndexer, config: ConfigSnapshot) -> SchemaArtifact:
        """Build the schema for *config*, write its side files and record its SDL in *index*.

        Raises
        ------
        SchemaBuildError
            When the configuration yields an invalid GraphQL schema.
        """
        artifact = self.assemble(config)
        await self.persist(index, artifact)
        return artifact

    def assemble(self, config: ConfigSnapshot) -> SchemaArtifact:
        """Build the schema for *config* in memory only."""
        try:
            graphql_schema, lookup = build_graphql_schema(config)
        except (KeyError, TypeError) as exc:
            raise SchemaBuildError(f"Unable to build schema: {exc}") from exc
        query_doc, frag_doc = build_documents(config)
        logger.debug("Built schema with %d collection(s)", len(config.collections))
        return SchemaArtifact(
            config=config,
            graphql_schema=graphql_schema,
            query_doc=query_doc,
            frag_doc=frag_doc,
            schema=serialize_schema(config),
            lookup=lookup,
            graphql=introspection_from_schema(graphql_schema),
        )

    async def persist(self, index: ContentIndexer, artifact: SchemaArtifact) -> None:
        """Write the three JSON side files and store the SDL in *index*."""
        cm = self.config_manager
        await self.writer.write_json(cm.generated_schema_json_path, artifact.schema)
        await self.writer.write_json(cm.generated_lookup_json_path, artifact.lookup)
        await self.writer.write_json(cm.generated_graphql_json_path, artifact.graphql)

        sdl = artifact.sdl
        await index.store_schema(sdl, hashlib.sha256(sdl.encode("utf-8")).hexdigest())

    def collect_documents(self, config: ConfigSnapshot) -> tuple[str, str]:
        """Re-derive the canonical query and fragment documents only."""
        return build_documents(config)
