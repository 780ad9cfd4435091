"""Client and type code generation."""

from contentloom.codegen.api_url import resolve_api_url
from contentloom.codegen.pipeline import Codegen, GeneratedCode, generate
from contentloom.codegen.writer import ArtifactName, ArtifactWriter

__all__ = [
    "ArtifactName",
    "ArtifactWriter",
    "Codegen",
    "GeneratedCode",
    "generate",
    "resolve_api_url",
]
