"""contentloom - keeps a content index, GraphQL schema and generated client in sync."""

__version__ = "0.4.0"
