"""Codegen pipeline: schema + query documents -> client and type source files."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from graphql import print_schema

from contentloom.codegen.api_url import resolve_api_url
from contentloom.codegen.typegen import TypeCode, generate_types, transpile
from contentloom.codegen.writer import ArtifactName
from contentloom.config.models import OutputMode

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from graphql import GraphQLSchema

    from contentloom.codegen.writer import ArtifactWriter
    from contentloom.config.manager import ConfigManager
    from contentloom.schema.builder import SchemaArtifact

logger = logging.getLogger(__name__)

FRAGMENT_SIZE_LIMIT = 100 * 1024

REFERENCE_DEPTH_SNIPPET = """\
client:
  referenceDepth: 1"""

CLIENT_PACKAGE = "@contentloom/client"


@dataclass(frozen=True)
class GeneratedCode:
    """Output of one generation pass."""

    client_code: str
    type_code: TypeCode


def client_source(api_url: str, token: str | None) -> str:
    return (
        f'import {{ createClient }} from "{CLIENT_PACKAGE}";\n'
        'import { queries } from "./types";\n'
        f"export const client = createClient({{ url: '{api_url}', "
        f"token: '{token or ''}', queries }});\n"
        "export default client;\n"
    )


def schema_source(schema: GraphQLSchema) -> str:
    return (
        "# DO NOT MODIFY THIS FILE. This file is automatically generated by contentloom\n"
        f"{print_schema(schema)}\n"
        "schema {\n  query: Query\n  mutation: Mutation\n}\n"
    )


def generate(
    schema: GraphQLSchema,
    query_globs: Sequence[str],
    fragment_globs: Sequence[str],
    api_url: str,
    *,
    token: str | None = None,
) -> GeneratedCode:
    """Produce the client code and type code for *schema*.

    Reads the files matched by both glob sets and nothing else.

    Raises
    ------
    CodegenError
        When a matched document does not parse or validate.
    """
    type_code = generate_types(schema, query_globs, fragment_globs, api_url)
    return GeneratedCode(client_code=client_source(api_url, token), type_code=type_code)


def maybe_warn_fragment_size(path: Path) -> bool:
    """Log an advisory when the fragment document is over the limit. Never raises."""
    try:
        size = path.stat().st_size
    except OSError:
        return False
    if size <= FRAGMENT_SIZE_LIMIT:
        return False
    logger.warning(
        "%s is very large (>100kb). Consider setting the reference depth to 1 or 0 "
        "in your config:\n%s",
        path.name,
        REFERENCE_DEPTH_SNIPPET,
    )
    return True


class Codegen:
    """Writes every codegen artifact for one :class:`SchemaArtifact`."""

    def __init__(
        self,
        config_manager: ConfigManager,
        writer: ArtifactWriter,
        *,
        port: int | None = None,
        no_sdk: bool = False,
    ) -> None:
        self.config_manager = config_manager
        self.writer = writer
        self.port = port
        self.no_sdk = no_sdk

    def api_url(self, artifact: SchemaArtifact) -> str:
        return resolve_api_url(artifact.config.connection, port=self.port)

    async def execute(self, artifact: SchemaArtifact) -> str:
        """Generate and write the artifacts; returns the resolved API URL."""
        api_url = self.api_url(artifact)
        if self.no_sdk:
            await self.writer.remove_generated_code()
            return api_url

        cm = self.config_manager
        await self.writer.write(cm.generated_queries_file_path, artifact.query_doc)
        await self.writer.write(cm.generated_fragments_file_path, artifact.frag_doc)
        await asyncio.to_thread(maybe_warn_fragment_size, cm.generated_fragments_file_path)

        code = await asyncio.to_thread(
            generate,
            artifact.graphql_schema,
            cm.user_queries_and_fragments_glob,
            cm.generated_queries_and_fragments_glob,
            api_url,
            token=artifact.config.connection.token,
        )
        await self.writer.write(
            cm.generated_graphql_gql_path, schema_source(artifact.graphql_schema)
        )

        mode = artifact.config.output_mode
        if mode is OutputMode.TYPESCRIPT:
            contents = {
                ArtifactName.TYPE_CODE: code.type_code.typed(),
                ArtifactName.CLIENT_CODE: code.client_code,
            }
        else:
            contents = {
                ArtifactName.TYPE_DECLARATIONS: code.type_code.typed(),
                ArtifactName.TYPE_RUNTIME: transpile(code.type_code),
                ArtifactName.CLIENT_CODE: code.client_code,
            }
        await self.writer.write_mode_artifacts(mode, contents)
        logger.debug("Generated %s client for %s", mode.value, api_url)
        return api_url
