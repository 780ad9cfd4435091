"""Error taxonomy shared by the reconcile pipeline and the watch handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class ContentloomError(Exception):
    """Base class for every error raised by contentloom."""


class ConfigurationError(ContentloomError):
    """Raised when configuration is missing, unreadable or invalid.

    ``missing`` lists the offending field names in the order they were checked.
    """

    def __init__(self, message: str, *, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing: tuple[str, ...] = tuple(missing)


class SchemaBuildError(ContentloomError):
    """Raised when the GraphQL schema cannot be built from the configuration."""


class ContentIndexError(ContentloomError):
    """Raised when a content file fails path- or field-level validation."""

    def __init__(self, message: str, *, path: str, field: str | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.field = field


class CodegenError(ContentloomError):
    """Raised when user query documents cannot be turned into client code."""


class WatchSetupError(ContentloomError):
    """Raised when a file watcher cannot be established."""


class SubprocessError(ContentloomError):
    """Raised when the supervised sub-command cannot be started."""
