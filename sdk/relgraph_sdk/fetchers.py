"""
Document fetchers for the query engine.

A fetcher turns an href into a parsed JSON object, making exactly one
attempt. Retrying is the query engine's job, so every fetcher reports
failures the same way:
- TargetUnavailable: the target may appear later (transport error,
  404, 408, 429, 5xx); the engine retries with backoff
- DocumentError: the target exists but is not a usable document

Implementations:
- HttpFetcher: a published graph behind HTTP (httpx AsyncClient)
- DirectoryFetcher: a published build directory on disk
- MappingFetcher: in-memory documents, e.g. a fresh build result
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

import httpx

from .config import ClientSettings
from .errors import DocumentError, TargetUnavailable

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({404, 408, 429})


@runtime_checkable
class Fetcher(Protocol):
    """Protocol every fetcher implements."""

    async def fetch(self, href: str) -> Dict[str, Any]:
        """Fetch and parse one document.

        Raises:
            TargetUnavailable: If the target could not be fetched
            DocumentError: If the target is not a JSON object
        """
        ...


def _parse(href: str, data: bytes) -> Dict[str, Any]:
    try:
        parsed = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DocumentError(href, f"not valid JSON ({e})") from e
    if not isinstance(parsed, dict):
        raise DocumentError(href, "not a JSON object")
    return parsed


class HttpFetcher:
    """Fetches documents over HTTP.

    Root-relative hrefs are joined to ``settings.base_url``; absolute URLs
    are fetched as-is.

    Example:
        >>> async with HttpFetcher(ClientSettings(base_url="https://example.org/rn")) as f:
        ...     root = await f.fetch("/index.json")
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout_seconds,
            headers={
                "Accept": "application/hal+json, application/json",
                "User-Agent": self.settings.user_agent,
            },
            transport=transport,
        )

    async def fetch(self, href: str) -> Dict[str, Any]:
        try:
            response = await self._client.get(href)
        except httpx.TransportError as e:
            raise TargetUnavailable(href, f"{type(e).__name__}: {e}") from e

        status = response.status_code
        if status in RETRYABLE_STATUS or status >= 500:
            raise TargetUnavailable(href, f"HTTP {status}", status_code=status)
        if status >= 400:
            raise DocumentError(href, f"HTTP {status}")

        logger.debug("Fetched document", extra={"href": href, "status": status})
        return _parse(href, response.content)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpFetcher:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()


class DirectoryFetcher:
    """Reads documents from a published build directory.

    Pass the output directory's ``current`` link (or any build directory)
    as ``root``.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    async def fetch(self, href: str) -> Dict[str, Any]:
        if not href.startswith("/"):
            raise DocumentError(href, "only root-relative hrefs can be read from a directory")
        path = (self.root / href.lstrip("/")).resolve()
        if self.root not in path.parents:
            raise DocumentError(href, "path escapes the published tree")
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise TargetUnavailable(href, "not found", status_code=404) from None
        except OSError as e:
            raise TargetUnavailable(href, str(e)) from e
        return _parse(href, data)


class MappingFetcher:
    """Serves documents from memory, keyed by href.

    Example:
        >>> fetcher = MappingFetcher(build_result.documents())
    """

    def __init__(self, documents: Mapping[str, Dict[str, Any]]) -> None:
        self.documents = dict(documents)

    async def fetch(self, href: str) -> Dict[str, Any]:
        document = self.documents.get(href)
        if document is None:
            raise TargetUnavailable(href, "not found", status_code=404)
        if not isinstance(document, dict):
            raise DocumentError(href, "not a JSON object")
        return document
