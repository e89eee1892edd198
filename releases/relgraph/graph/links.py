"""
Link resolution: structural links and the wormhole registry.

Two categories of links are computed here:
- Structural: ``self`` and ``up`` on every resource, plus ``prev``/``next``
  chains over the sorted sequence of frozen patch and month resources
- Wormholes: shortcuts to graph-distant resources, declared once as
  (source kind [, collection], relation) -> target kind rules

Invariants:
    - A wormhole rule may only target a frozen or cold kind; registering
      one that targets a warm kind fails immediately
    - Chains are ordered by (release date, version); the first entry has
      no ``prev`` and the last has no ``next``
    - Link resolution is a pure function of its inputs

How to change safely:
    - Add wormholes by registering a rule, never by hand-placing links in
      the builder
    - A new relation must also be permitted by the source kind's schema
"""

from __future__ import annotations

import calendar
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..facts.types import ReleaseFact
from ..schema.registry import SchemaRegistry, get_registry
from ..schema.resources import Link
from ..schema.types import HAL_MEDIA_TYPE, JSON_MEDIA_TYPE, MutabilityClass, ResourceKind
from ..versions import latest
from .uris import cve_json_uri, month_uri, patch_uri, sdk_uri

logger = logging.getLogger(__name__)


def month_title(year: int, month: int) -> str:
    return f"{calendar.month_name[month]} {year}"


@dataclass(frozen=True)
class MajorSubject:
    """Inputs for resolving links of a MajorVersionIndex."""

    major: str
    facts: Tuple[ReleaseFact, ...]

    @property
    def latest_patch(self) -> Optional[ReleaseFact]:
        return self.facts[-1] if self.facts else None

    @property
    def latest_security_patch(self) -> Optional[ReleaseFact]:
        security = [f for f in self.facts if f.is_security]
        return security[-1] if security else None


@dataclass(frozen=True)
class MonthSubject:
    """Inputs for resolving links of a MonthIndex."""

    year: int
    month: int
    facts: Tuple[ReleaseFact, ...]

    @property
    def has_cves(self) -> bool:
        return any(f.cve_ids for f in self.facts)


@dataclass(frozen=True)
class WormholeRule:
    """One declarative shortcut.

    Attributes:
        source: Kind whose documents carry the link
        relation: Relation name
        target: Kind the link points to
        resolve: Maps the subject to (href, title), or None to omit the link
        collection: Embedded collection carrying the link (None for the
            resource's own ``_links``)
        media_type: Media type of the target
    """

    source: ResourceKind
    relation: str
    target: ResourceKind
    resolve: Callable[[Any], Optional[Tuple[str, str]]]
    collection: Optional[str] = None
    media_type: str = HAL_MEDIA_TYPE

    @property
    def key(self) -> Tuple[ResourceKind, Optional[str], str]:
        return self.source, self.collection, self.relation


class WormholeRegistry:
    """Registry of wormhole rules.

    Example:
        >>> registry = WormholeRegistry()
        >>> registry.register(WormholeRule(
        ...     ResourceKind.PATCH, "release-month", ResourceKind.MONTH, _release_month))
        >>> registry.is_wormhole(ResourceKind.PATCH, "release-month")
        True
    """

    def __init__(self, schemas: Optional[SchemaRegistry] = None) -> None:
        self._rules: Dict[Tuple[ResourceKind, Optional[str], str], WormholeRule] = {}
        self._schemas = schemas
        self._lock = threading.Lock()

    def register(self, rule: WormholeRule) -> None:
        """Register a wormhole rule.

        Raises:
            ValueError: If the target is warm, the relation is not permitted
                by the source schema, or the rule is already registered
        """
        if rule.target.mutability not in (MutabilityClass.FROZEN, MutabilityClass.COLD):
            raise ValueError(
                f"Wormhole '{rule.relation}' from '{rule.source.value}' targets "
                f"'{rule.target.value}', which is {rule.target.mutability.value}; "
                f"wormholes may only target frozen or cold kinds"
            )

        schema = (self._schemas or get_registry()).get(rule.source)
        if schema is None:
            raise ValueError(f"No schema for wormhole source '{rule.source.value}'")
        if rule.collection is None:
            permitted = schema.relations
        else:
            collection = schema.get_collection(rule.collection)
            if collection is None:
                raise ValueError(
                    f"Kind '{rule.source.value}' has no collection '{rule.collection}'"
                )
            permitted = collection.relations
        if rule.relation not in permitted:
            raise ValueError(
                f"Relation '{rule.relation}' is not permitted on "
                f"'{rule.source.value}'" + (f".{rule.collection}" if rule.collection else "")
            )

        with self._lock:
            if rule.key in self._rules:
                raise ValueError(f"Wormhole {rule.key} is already registered")
            self._rules[rule.key] = rule
        logger.debug(
            f"Registered wormhole {rule.source.value}:{rule.relation} -> {rule.target.value}"
        )

    def rules_for(
        self, source: ResourceKind, collection: Optional[str] = None
    ) -> List[WormholeRule]:
        return [
            r for r in self._rules.values()
            if r.source == source and r.collection == collection
        ]

    def get(
        self, source: ResourceKind, relation: str, collection: Optional[str] = None
    ) -> Optional[WormholeRule]:
        return self._rules.get((source, collection, relation))

    def is_wormhole(
        self, source: ResourceKind, relation: str, collection: Optional[str] = None
    ) -> bool:
        return (source, collection, relation) in self._rules

    def __iter__(self):
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)


def _release_month(fact: ReleaseFact) -> Tuple[str, str]:
    year, month = fact.year_month
    return month_uri(year, month), month_title(year, month)


def _patch_cve_json(fact: ReleaseFact) -> Optional[Tuple[str, str]]:
    if not fact.cve_ids:
        return None
    year, month = fact.year_month
    return cve_json_uri(year, month), f"CVE records for {month_title(year, month)}"


def _latest_sdk(fact: ReleaseFact) -> Optional[Tuple[str, str]]:
    sdk = latest(list(fact.sdk_patches))
    if sdk is None:
        return None
    return sdk_uri(fact.major_version, sdk), f"SDK {sdk}"


def _latest_patch(subject: MajorSubject) -> Optional[Tuple[str, str]]:
    fact = subject.latest_patch
    if fact is None:
        return None
    return patch_uri(fact.major_version, fact.patch_version), f"Latest patch {fact.patch_version}"


def _latest_security_patch(subject: MajorSubject) -> Optional[Tuple[str, str]]:
    fact = subject.latest_security_patch
    if fact is None:
        return None
    return (
        patch_uri(fact.major_version, fact.patch_version),
        f"Latest security patch {fact.patch_version}",
    )


def _month_cve_json(subject: MonthSubject) -> Optional[Tuple[str, str]]:
    if not subject.has_cves:
        return None
    return (
        cve_json_uri(subject.year, subject.month),
        f"CVE records for {month_title(subject.year, subject.month)}",
    )


def create_default_wormholes(schemas: Optional[SchemaRegistry] = None) -> WormholeRegistry:
    """Registry holding every shortcut the graph publishes."""
    registry = WormholeRegistry(schemas)
    P, J = ResourceKind.PATCH, JSON_MEDIA_TYPE

    registry.register(WormholeRule(P, "release-month", ResourceKind.MONTH, _release_month))
    registry.register(
        WormholeRule(P, "cve-json", ResourceKind.CVE_DOCUMENT, _patch_cve_json, media_type=J)
    )
    registry.register(
        WormholeRule(P, "latest-sdk", ResourceKind.SDK_RELEASE, _latest_sdk, media_type=J)
    )

    # Patch summaries: identical rules on both axes.
    for source in (ResourceKind.MAJOR, ResourceKind.MONTH):
        registry.register(
            WormholeRule(source, "release-month", ResourceKind.MONTH, _release_month, "patches")
        )
        registry.register(
            WormholeRule(
                source, "cve-json", ResourceKind.CVE_DOCUMENT, _patch_cve_json, "patches", J
            )
        )

    registry.register(WormholeRule(ResourceKind.MAJOR, "latest", P, _latest_patch))
    registry.register(WormholeRule(ResourceKind.MAJOR, "latest-security", P, _latest_security_patch))
    registry.register(
        WormholeRule(
            ResourceKind.MONTH, "cve-json", ResourceKind.CVE_DOCUMENT, _month_cve_json, media_type=J
        )
    )
    return registry


@dataclass(frozen=True)
class ChainEntry:
    """One member of a prev/next chain."""

    uri: str
    key: Tuple[Any, ...]
    title: str


@dataclass(frozen=True)
class ChainLinks:
    prev: Optional[ChainEntry] = None
    next: Optional[ChainEntry] = None


def build_chain(entries: Sequence[ChainEntry]) -> Dict[str, ChainLinks]:
    """Compute prev/next neighbours over entries sorted by key.

    Raises:
        ValueError: If two entries share a URI
    """
    ordered = sorted(entries, key=lambda e: e.key)
    uris = [e.uri for e in ordered]
    if len(set(uris)) != len(uris):
        raise ValueError("Chain entries must have unique URIs")

    chain: Dict[str, ChainLinks] = {}
    for i, entry in enumerate(ordered):
        chain[entry.uri] = ChainLinks(
            prev=ordered[i - 1] if i > 0 else None,
            next=ordered[i + 1] if i + 1 < len(ordered) else None,
        )
    return chain


class LinkResolver:
    """Computes the ``_links`` of resources and embedded items.

    Example:
        >>> resolver = LinkResolver()
        >>> links = resolver.resolve(ResourceKind.PATCH, uri, fact, title="9.0.10",
        ...                          up=(major_uri("9.0"), ".NET 9.0"))
    """

    def __init__(self, wormholes: Optional[WormholeRegistry] = None) -> None:
        self.wormholes = wormholes or create_default_wormholes()

    def resolve(
        self,
        kind: ResourceKind,
        uri: str,
        subject: Any = None,
        *,
        title: Optional[str] = None,
        up: Optional[Tuple[str, str]] = None,
        chain: Optional[ChainLinks] = None,
        extra: Sequence[Link] = (),
    ) -> List[Link]:
        """Links of one resource.

        Args:
            kind: Resource kind
            uri: Resource URI (becomes ``self``)
            subject: Input the wormhole rules resolve against
            title: Title of the ``self`` link
            up: (href, title) of the parent resource
            chain: prev/next neighbours (frozen kinds only)
            extra: Further structural links, e.g. root navigation

        Raises:
            ValueError: If a chain is given for a non-frozen kind
        """
        links = [Link("self", uri, title)]
        if up is not None:
            links.append(Link("up", up[0], up[1]))
        if chain is not None:
            if kind.mutability is not MutabilityClass.FROZEN:
                raise ValueError(f"prev/next chains are only for frozen kinds, not '{kind.value}'")
            if chain.prev is not None:
                links.append(Link("prev", chain.prev.uri, chain.prev.title))
            if chain.next is not None:
                links.append(Link("next", chain.next.uri, chain.next.title))
        links.extend(extra)
        links.extend(self._wormholes(kind, None, subject))
        return links

    def resolve_item(
        self,
        kind: ResourceKind,
        collection: str,
        uri: Optional[str],
        subject: Any = None,
        title: Optional[str] = None,
    ) -> List[Link]:
        """Links of one embedded item of ``kind.collection``."""
        links = [Link("self", uri, title)] if uri else []
        links.extend(self._wormholes(kind, collection, subject))
        return links

    def _wormholes(
        self, kind: ResourceKind, collection: Optional[str], subject: Any
    ) -> List[Link]:
        if subject is None:
            return []
        links = []
        for rule in self.wormholes.rules_for(kind, collection):
            resolved = rule.resolve(subject)
            if resolved is None:
                continue
            href, title = resolved
            links.append(Link(rule.relation, href, title, rule.media_type))
        return links
