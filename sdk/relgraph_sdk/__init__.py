"""
Release graph Python SDK - Query engine for a published release graph.

This SDK reads the graph the builder publishes:
- QueryEngine for relation paths and key lookups on both axes
- Fetchers for HTTP, a build directory, or in-memory documents
- ClientSettings for entry point and retry configuration

Example:
    >>> from relgraph_sdk import ClientSettings, HttpFetcher, QueryEngine
    >>>
    >>> settings = ClientSettings(base_url="https://example.org/release-notes")
    >>> async with HttpFetcher(settings) as fetcher:
    ...     engine = QueryEngine(fetcher, settings)
    ...     patch = await engine.follow(["latest", "latest-security"], start="/9.0/index.json")
    ...     month = await engine.follow(["release-month"], start=patch.href)

Invariants:
    - The engine never writes and never caches across calls
    - Missing relations fail fast; unavailable targets are retried

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import ClientSettings
from .errors import (
    DocumentError,
    KeyNotFound,
    RelationNotFound,
    RelGraphError,
    TargetUnavailable,
)
from .fetchers import DirectoryFetcher, Fetcher, HttpFetcher, MappingFetcher
from .query import Document, LinkRef, QueryEngine

__all__ = [
    # Config
    "ClientSettings",
    # Errors
    "RelGraphError",
    "RelationNotFound",
    "KeyNotFound",
    "TargetUnavailable",
    "DocumentError",
    # Fetchers
    "Fetcher",
    "HttpFetcher",
    "DirectoryFetcher",
    "MappingFetcher",
    # Query
    "QueryEngine",
    "Document",
    "LinkRef",
]
