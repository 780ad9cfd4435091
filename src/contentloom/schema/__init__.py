"""Schema domain: GraphQL schema, resolvers and canonical documents."""

from contentloom.schema.builder import SchemaArtifact, SchemaBuilder, build_graphql_schema
from contentloom.schema.documents import build_documents, type_name

__all__ = [
    "SchemaArtifact",
    "SchemaBuilder",
    "build_documents",
    "build_graphql_schema",
    "type_name",
]
