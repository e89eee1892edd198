"""
Query engine: traversal of a published release graph.

The engine only reads. It starts at an entry document and walks ``_links``
(relation paths) or ``_embedded`` items (key lookups), fetching each hop
through a Fetcher.

Query modes:
- Relation path: ``follow(["latest", "latest-security"])``
- Version axis: ``find_patch("9.0.10")`` descends
  RootIndex -> MajorVersionIndex -> PatchIndex
- Time axis: ``find_patch_in_month(2025, 10, "9.0.10")`` descends
  TimelineIndex -> YearIndex -> MonthIndex -> PatchIndex

Both axes end on the same frozen PatchIndex document.

Invariants:
    - TargetUnavailable is retried with exponential backoff
      (retry_delay_ms * backoff_factor ** n), up to max_retries times
    - RelationNotFound and DocumentError are never retried
    - A failed hop raises; nothing stale or made up is returned

Example:
    >>> engine = QueryEngine(HttpFetcher(settings), settings)
    >>> patch = await engine.follow(["latest", "latest-security"], start="/9.0/index.json")
    >>> patch.get("cveIds")
    ['CVE-2025-55247', 'CVE-2025-55248', 'CVE-2025-55315']
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .config import ClientSettings
from .errors import DocumentError, KeyNotFound, RelationNotFound, TargetUnavailable
from .fetchers import Fetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkRef:
    """A link as read from a document."""

    relation: str
    href: str
    title: Optional[str] = None
    type: Optional[str] = None
    templated: bool = False

    @classmethod
    def from_dict(cls, relation: str, data: Dict[str, Any]) -> LinkRef:
        return cls(
            relation=relation,
            href=data["href"],
            title=data.get("title"),
            type=data.get("type"),
            templated=bool(data.get("templated", False)),
        )


def _links_of(data: Dict[str, Any], href: str) -> Dict[str, List[LinkRef]]:
    raw = data.get("_links") or {}
    if not isinstance(raw, dict):
        raise DocumentError(href, "'_links' is not an object")
    links: Dict[str, List[LinkRef]] = {}
    for relation, value in raw.items():
        values = value if isinstance(value, list) else [value]
        try:
            links[relation] = [LinkRef.from_dict(relation, v) for v in values]
        except (KeyError, TypeError, AttributeError):
            raise DocumentError(href, f"link '{relation}' has no href") from None
    return links


class Document:
    """A fetched graph document.

    Attributes:
        href: Where the document was fetched from
        data: Parsed JSON, unchanged
    """

    def __init__(self, href: str, data: Dict[str, Any]) -> None:
        if "kind" not in data:
            raise DocumentError(href, "missing 'kind'")
        self.href = href
        self.data = data
        self._links = _links_of(data, href)

    @property
    def kind(self) -> str:
        return self.data["kind"]

    @property
    def relations(self) -> List[str]:
        return list(self._links)

    def get(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)

    def link(self, relation: str) -> Optional[LinkRef]:
        links = self._links.get(relation)
        return links[0] if links else None

    def links(self, relation: str) -> List[LinkRef]:
        return list(self._links.get(relation, []))

    def embedded(self, collection: str) -> List[Dict[str, Any]]:
        items = (self.data.get("_embedded") or {}).get(collection) or []
        if not isinstance(items, list):
            raise DocumentError(self.href, f"'_embedded.{collection}' is not an array")
        return items

    def find_item(self, collection: str, key: str, value: str) -> Dict[str, Any]:
        """Embedded item whose ``key`` equals ``value``.

        Raises:
            KeyNotFound: If no item matches
        """
        items = self.embedded(collection)
        for item in items:
            if str(item.get(key)) == value:
                return item
        raise KeyNotFound(
            collection, value, href=self.href,
            available=[str(i.get(key)) for i in items],
        )

    def __repr__(self) -> str:
        return f"Document({self.kind!r}, {self.href!r})"


def _item_self(document: Document, item: Dict[str, Any], collection: str) -> str:
    link = (item.get("_links") or {}).get("self")
    if isinstance(link, list):
        link = link[0] if link else None
    if not isinstance(link, dict) or "href" not in link:
        raise DocumentError(document.href, f"'{collection}' item has no self link")
    return link["href"]


def major_of(version: str) -> str:
    """``9.0.10`` -> ``9.0``."""
    parts = version.split("-", 1)[0].split(".")
    if len(parts) < 2:
        raise ValueError(f"Invalid version '{version}'")
    return f"{parts[0]}.{parts[1]}"


class QueryEngine:
    """Traverses a published graph through a Fetcher.

    Attributes:
        fetcher: Document source
        settings: Entry point and retry configuration
    """

    def __init__(
        self,
        fetcher: Fetcher,
        settings: Optional[ClientSettings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.settings = settings or ClientSettings()
        self._sleep = sleep

    async def fetch(self, href: str) -> Document:
        """Fetch one document, retrying while the target is unavailable.

        Raises:
            TargetUnavailable: If every attempt failed
            DocumentError: If the document is malformed
        """
        attempts = self.settings.max_retries + 1
        last: Optional[TargetUnavailable] = None
        for attempt in range(attempts):
            try:
                return Document(href, await self.fetcher.fetch(href))
            except TargetUnavailable as e:
                last = e
                if attempt + 1 >= attempts:
                    break
                delay = self.settings.retry_delay(attempt)
                logger.warning(
                    "Target unavailable, retrying",
                    extra={"href": href, "attempt": attempt + 1, "delay_s": delay, "reason": e.reason},
                )
                await self._sleep(delay)

        raise TargetUnavailable(
            href, last.reason if last else "unknown",
            status_code=last.status_code if last else None,
            attempts=attempts,
        )

    async def follow(self, relations: Sequence[str], start: Optional[str] = None) -> Document:
        """Walk a relation path and return the final document.

        Args:
            relations: Relation names, applied in order
            start: Starting href (defaults to the entry point)

        Raises:
            RelationNotFound: If a hop's relation is absent
            TargetUnavailable: If a hop could not be fetched
        """
        document = await self.fetch(start or self.settings.entry_point)
        for relation in relations:
            link = self._require(document, relation)
            document = await self.fetch(link.href)
        return document

    async def resolve_link(self, relations: Sequence[str], start: Optional[str] = None) -> LinkRef:
        """Walk all but the last relation and return the last link unfetched.

        Used for opaque targets such as ``cve-json``.

        Raises:
            ValueError: If ``relations`` is empty
        """
        if not relations:
            raise ValueError("resolve_link needs at least one relation")
        document = await self.follow(relations[:-1], start)
        return self._require(document, relations[-1])

    async def find_major(self, major: str) -> Document:
        """RootIndex -> MajorVersionIndex."""
        root = await self.fetch(self.settings.entry_point)
        item = root.find_item("majors", "version", major)
        return await self.fetch(_item_self(root, item, "majors"))

    async def find_patch(self, version: str) -> Document:
        """RootIndex -> MajorVersionIndex -> PatchIndex."""
        major = await self.find_major(major_of(version))
        item = major.find_item("patches", "version", version)
        return await self.fetch(_item_self(major, item, "patches"))

    async def find_year(self, year: int | str) -> Document:
        """RootIndex -> TimelineIndex -> YearIndex."""
        timeline = await self.follow(["timeline"])
        item = timeline.find_item("years", "year", str(year))
        return await self.fetch(_item_self(timeline, item, "years"))

    async def find_month(self, year: int | str, month: int | str) -> Document:
        """TimelineIndex -> YearIndex -> MonthIndex."""
        year_doc = await self.find_year(year)
        item = year_doc.find_item("months", "month", f"{int(month):02d}")
        return await self.fetch(_item_self(year_doc, item, "months"))

    async def find_patch_in_month(
        self, year: int | str, month: int | str, version: str
    ) -> Document:
        """TimelineIndex -> YearIndex -> MonthIndex -> PatchIndex."""
        month_doc = await self.find_month(year, month)
        item = month_doc.find_item("patches", "version", version)
        return await self.fetch(_item_self(month_doc, item, "patches"))

    @staticmethod
    def _require(document: Document, relation: str) -> LinkRef:
        link = document.link(relation)
        if link is None:
            raise RelationNotFound(relation, href=document.href, available=document.relations)
        return link
