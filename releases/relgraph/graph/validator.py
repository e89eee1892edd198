"""
Consistency validator: the cache-safety gate run before every publish.

Every resource is cached independently with a lifetime derived from its
mutability class. The graph is safe to serve from such caches only if no
evolving fact is inlined in two independently cached documents. This
module enforces that mechanically.

Approach:
    1. While the builder constructs resources (possibly on several worker
       threads) each one is added to a ReverseIndex mapping
       fact identity -> every place the fact is inlined
    2. After the build barrier the index is sealed and the validator walks
       it once, reporting every conflict

Conflict kinds:
    - duplicated-currency: a currency fact inlined in two mutable resources
    - cadence: a field changes faster than its resource is rewritten
      (currency in a cold resource, anything non-fixed in a frozen one)
    - lifecycle-mismatch: mirrors of a lifecycle fact disagree
    - wormhole-target: a wormhole link points at a warm resource
    - dangling-link: an internal href resolves to nothing in the graph

Invariants:
    - The index is only inspected after it is sealed
    - Validation is read-only and deterministic (conflicts sorted)
    - Any conflict blocks the entire publish
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..errors import ConsistencyViolation
from ..schema.resources import Resource
from ..schema.types import FieldSpec, MutabilityClass, Volatility
from .links import WormholeRegistry, create_default_wormholes
from .uris import kind_of

logger = logging.getLogger(__name__)


class ConflictKind(Enum):
    DUPLICATED_CURRENCY = "duplicated-currency"
    CADENCE = "cadence"
    LIFECYCLE_MISMATCH = "lifecycle-mismatch"
    WORMHOLE_TARGET = "wormhole-target"
    DANGLING_LINK = "dangling-link"


@dataclass(frozen=True)
class Conflict:
    """One violation of the consistency rules.

    Attributes:
        kind: Rule that was violated
        subject: Fact identity or relation involved
        uris: Resources involved
        message: Human-readable explanation
    """

    kind: ConflictKind
    subject: str
    uris: Tuple[str, ...]
    message: str

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"


@dataclass(frozen=True)
class FactOccurrence:
    """One place a fact is inlined."""

    fact: str
    uri: str
    path: str
    value: Any
    volatility: Volatility
    mutability: MutabilityClass


def _occurrences_in(
    specs: Iterable[FieldSpec],
    values: Mapping[str, Any],
    resource: Resource,
    prefix: str,
) -> Iterator[FactOccurrence]:
    for spec in specs:
        if spec.name not in values:
            continue
        identity = spec.fact_identity(values)
        if identity is None:
            continue
        yield FactOccurrence(
            fact=identity,
            uri=resource.uri,
            path=prefix + spec.name,
            value=values[spec.name],
            volatility=spec.volatility,
            mutability=resource.mutability,
        )


def fact_occurrences(resource: Resource) -> List[FactOccurrence]:
    """Every fact-bearing value a resource inlines, embedded items included."""
    found = list(_occurrences_in(resource.schema.fields, resource.fields, resource, ""))
    for collection in resource.schema.collections:
        for i, item in enumerate(resource.items(collection.name)):
            found.extend(
                _occurrences_in(
                    collection.fields, item.fields, resource,
                    f"_embedded.{collection.name}[{i}].",
                )
            )
    return found


class ReverseIndex:
    """Fact identity -> occurrences, accumulated from many builder threads.

    Thread-safety:
        - add() may be called concurrently
        - Readers must call seal() first; nothing can be added afterwards

    Example:
        >>> index = ReverseIndex()
        >>> index.add(major_index)
        >>> index.seal()
        >>> index.occurrences("latest-patch:9.0")
    """

    def __init__(self) -> None:
        self._facts: Dict[str, List[FactOccurrence]] = defaultdict(list)
        self._resources: Dict[str, Resource] = {}
        self._lock = threading.Lock()
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    def add(self, resource: Resource) -> None:
        """Index one resource.

        Raises:
            RuntimeError: If the index is sealed
            ValueError: If a resource with the same URI was already indexed
        """
        found = fact_occurrences(resource)
        with self._lock:
            if self._sealed:
                raise RuntimeError("Reverse index is sealed")
            if resource.uri in self._resources:
                raise ValueError(f"Resource {resource.uri} indexed twice")
            self._resources[resource.uri] = resource
            for occurrence in found:
                self._facts[occurrence.fact].append(occurrence)

    def seal(self) -> None:
        with self._lock:
            self._sealed = True

    def _require_sealed(self) -> None:
        if not self._sealed:
            raise RuntimeError("Reverse index must be sealed before it is read")

    def facts(self) -> List[str]:
        self._require_sealed()
        return sorted(self._facts)

    def occurrences(self, fact: str) -> List[FactOccurrence]:
        self._require_sealed()
        return sorted(self._facts.get(fact, []), key=lambda o: (o.uri, o.path))

    @property
    def resources(self) -> Mapping[str, Resource]:
        self._require_sealed()
        return self._resources

    def __len__(self) -> int:
        return len(self._facts)


def index_graph(resources: Iterable[Resource]) -> ReverseIndex:
    """Build and seal a reverse index over a complete graph."""
    index = ReverseIndex()
    for resource in resources:
        index.add(resource)
    index.seal()
    return index


@dataclass
class ValidationReport:
    """Result of one validation pass."""

    conflicts: List[Conflict]
    resources_checked: int
    facts_indexed: int

    @property
    def ok(self) -> bool:
        return not self.conflicts

    def by_kind(self, kind: ConflictKind) -> List[Conflict]:
        return [c for c in self.conflicts if c.kind == kind]


class ConsistencyValidator:
    """Checks a sealed reverse index against the consistency rules.

    Example:
        >>> validator = ConsistencyValidator()
        >>> report = validator.validate(index)
        >>> validator.check(index)  # raises ConsistencyViolation on conflict
    """

    def __init__(self, wormholes: Optional[WormholeRegistry] = None) -> None:
        self.wormholes = wormholes or create_default_wormholes()

    def validate(self, index: ReverseIndex) -> ValidationReport:
        """Report every conflict in the graph.

        Raises:
            RuntimeError: If the index is not sealed
        """
        conflicts: List[Conflict] = []
        for fact in index.facts():
            conflicts.extend(self._check_fact(fact, index.occurrences(fact)))
        for uri in sorted(index.resources):
            conflicts.extend(self._check_links(index.resources[uri], index.resources))

        conflicts.sort(key=lambda c: (c.kind.value, c.subject, c.uris))
        report = ValidationReport(
            conflicts=conflicts,
            resources_checked=len(index.resources),
            facts_indexed=len(index),
        )
        if conflicts:
            for conflict in conflicts:
                logger.warning(str(conflict), extra={"conflict": conflict.kind.value})
        else:
            logger.info(
                "Consistency check passed",
                extra={"resources": report.resources_checked, "facts": report.facts_indexed},
            )
        return report

    def check(self, index: ReverseIndex) -> ValidationReport:
        """Validate and raise on any conflict.

        Raises:
            ConsistencyViolation: If any rule is violated
        """
        report = self.validate(index)
        if not report.ok:
            raise ConsistencyViolation(report.conflicts)
        return report

    def _check_fact(self, fact: str, occurrences: List[FactOccurrence]) -> List[Conflict]:
        conflicts: List[Conflict] = []

        for o in occurrences:
            if o.volatility.rank > o.mutability.max_volatility.rank:
                conflicts.append(Conflict(
                    ConflictKind.CADENCE, fact, (o.uri,),
                    f"{o.volatility.value} fact '{fact}' inlined at {o.uri}:{o.path}, "
                    f"a {o.mutability.value} resource",
                ))

        mutable_owners = sorted({
            o.uri for o in occurrences
            if o.volatility is Volatility.CURRENCY and o.mutability.is_mutable
        })
        if len(mutable_owners) > 1:
            conflicts.append(Conflict(
                ConflictKind.DUPLICATED_CURRENCY, fact, tuple(mutable_owners),
                f"currency fact '{fact}' inlined in {len(mutable_owners)} mutable resources: "
                + ", ".join(mutable_owners),
            ))

        lifecycle = [o for o in occurrences if o.volatility is Volatility.LIFECYCLE]
        values = {json.dumps(o.value, sort_keys=True) for o in lifecycle}
        if len(values) > 1:
            conflicts.append(Conflict(
                ConflictKind.LIFECYCLE_MISMATCH, fact,
                tuple(sorted({o.uri for o in lifecycle})),
                f"lifecycle fact '{fact}' has {len(values)} different values: "
                + ", ".join(f"{o.uri}:{o.path}={o.value!r}" for o in lifecycle),
            ))
        return conflicts

    def _check_links(
        self, resource: Resource, resources: Mapping[str, Resource]
    ) -> List[Conflict]:
        conflicts: List[Conflict] = []
        places = [(None, resource.links)]
        for collection in resource.schema.collections:
            for item in resource.items(collection.name):
                places.append((collection.name, item.links))

        for collection, links in places:
            for link in links:
                if not link.is_internal:
                    continue
                target = kind_of(link.href)
                where = f"{resource.uri} {collection + '.' if collection else ''}{link.relation}"
                if target is None or (not target.is_external and link.href not in resources):
                    conflicts.append(Conflict(
                        ConflictKind.DANGLING_LINK, link.relation, (resource.uri,),
                        f"{where} -> {link.href} resolves to no resource",
                    ))
                    continue
                if self.wormholes.is_wormhole(resource.kind, link.relation, collection):
                    if target.mutability not in (MutabilityClass.FROZEN, MutabilityClass.COLD):
                        conflicts.append(Conflict(
                            ConflictKind.WORMHOLE_TARGET, link.relation, (resource.uri,),
                            f"wormhole {where} -> {link.href} targets a "
                            f"{target.mutability.value} {target.value}",
                        ))
        return conflicts
