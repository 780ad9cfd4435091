"""Resolve the GraphQL endpoint the generated client talks to."""

from __future__ import annotations

from typing import TYPE_CHECKING

from contentloom import __version__
from contentloom.errors import ConfigurationError

if TYPE_CHECKING:
    from contentloom.config.models import ConnectionConfig

CONTENT_HOST = "content.contentloom.dev"
DOCS_URL = "https://contentloom.dev/docs/connecting-site/"


def api_version(version: str = __version__) -> str:
    """``0.4.2`` -> ``0.4``: the hosted API is versioned by major.minor."""
    major, minor, *_ = version.split(".") + ["0"]
    return f"{major}.{minor}"


def resolve_api_url(connection: ConnectionConfig, *, port: int | None = None) -> str:
    """Pick the API URL.

    Precedence: explicit override, then the local dev server on *port*, then
    the hosted content API, which needs ``branch``, ``clientId`` and ``token``.

    Raises
    ------
    ConfigurationError
        Listing exactly the missing connection fields, in the order
        ``branch``, ``clientId``, ``token``.
    """
    if connection.content_api_url_override:
        return connection.content_api_url_override
    if port:
        return f"http://localhost:{port}/graphql"

    missing: list[str] = []
    if not connection.branch:
        missing.append("branch")
    if not connection.client_id:
        missing.append("clientId")
    if not connection.token:
        missing.append("token")
    if missing:
        raise ConfigurationError(
            f"Client not configured properly. Missing {', '.join(missing)}. "
            f"Please visit {DOCS_URL} for more information",
            missing=missing,
        )

    base = connection.cloud_url_override or f"https://{CONTENT_HOST}"
    return (
        f"{base.rstrip('/')}/{api_version()}/content/"
        f"{connection.client_id}/github/{connection.branch}"
    )
