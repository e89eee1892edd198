"""
Graph builder: materializes every resource from a complete FactSet.

The builder produces one document per resource and decides, per resource,
whether it is written now or reused from the previous publication:
- cold/warm resources (root, timeline, major, year) are regenerated on
  every build; their content only changes at their own cadence
- frozen resources (patch, month) are generated once; on later builds the
  published document is reused and only a ``next`` link may be appended

Both axes embed the same patch summaries: one function produces them, so a
patch reached by version and by time carries identical bytes.

Concurrency:
    Per-major and per-month subtrees do not depend on each other and are
    built on a thread pool. Every finished resource is added to the shared
    ReverseIndex (lock-protected); the index is sealed only after all
    workers have finished, which is the barrier before validation.

Frozen resources over time:
    The previous publication's manifest records, for every frozen
    resource, its canonical inputs, their fingerprint and the prev/next
    hrefs it was published with. Changed inputs, a removed fact, a changed
    prev (or an already-set next) are FrozenResourceMutationDetected. Under
    the default ``on_frozen_mutation="hold"`` the affected major-version
    subtree is rebuilt from its previously published facts, the mutation
    is recorded in the build result and every other subtree publishes.
    ``on_frozen_mutation="raise"`` aborts the whole build instead.

Invariants:
    - Builds are deterministic: identical facts produce identical bytes
    - Nothing is written to disk here; publishing is a separate step
    - A frozen resource is never regenerated once published
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from ..config import BuildConfig
from ..errors import FrozenResourceMutationDetected, PartialFact
from ..facts.types import FactSet, ReleaseFact, SupportPhase
from ..schema.resources import (
    EmbeddedItem,
    Link,
    MajorVersionIndex,
    MonthIndex,
    PatchIndex,
    Resource,
    RootIndex,
    TimelineIndex,
    YearIndex,
)
from ..schema.types import JSON_MEDIA_TYPE, MutabilityClass, ResourceKind
from ..versions import is_prerelease, version_key
from .diff import diff_inputs, fingerprint
from .links import (
    ChainEntry,
    ChainLinks,
    LinkResolver,
    MajorSubject,
    MonthSubject,
    build_chain,
    month_title,
)
from .uris import (
    ROOT_URI,
    TIMELINE_URI,
    major_uri,
    month_key,
    month_uri,
    parse_uri,
    patch_uri,
    sdk_uri,
    year_uri,
)
from .validator import ReverseIndex

logger = logging.getLogger(__name__)

ROOT_TITLE = "Release index"
TIMELINE_TITLE = "Release timeline"


def major_title(major: str) -> str:
    return f".NET {major}"


@dataclass(frozen=True)
class FrozenRecord:
    """What a frozen resource was published from.

    Attributes:
        uri: Resource URI
        kind: Resource kind string
        inputs: Canonical inputs the document was rendered from
        inputs_fingerprint: Fingerprint of ``inputs``
        prev: ``prev`` href it was published with
        next: ``next`` href it was published with
    """

    uri: str
    kind: str
    inputs: Dict[str, Any]
    inputs_fingerprint: str
    prev: Optional[str] = None
    next: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "inputs": self.inputs,
            "inputsFingerprint": self.inputs_fingerprint,
            "prev": self.prev,
            "next": self.next,
        }

    @classmethod
    def from_dict(cls, uri: str, data: Dict[str, Any]) -> FrozenRecord:
        return cls(
            uri=uri,
            kind=data["kind"],
            inputs=data["inputs"],
            inputs_fingerprint=data["inputsFingerprint"],
            prev=data.get("prev"),
            next=data.get("next"),
        )


class PreviousGraph(Protocol):
    """What the builder needs from the previous publication."""

    @property
    def frozen_records(self) -> Dict[str, FrozenRecord]: ...

    @property
    def facts(self) -> Optional[FactSet]: ...

    def document(self, uri: str) -> Optional[Dict[str, Any]]: ...


@dataclass
class BuildResult:
    """Everything one build produced.

    Attributes:
        resources: URI -> resource, for the whole graph
        facts: Facts the graph was built from (after any held subtrees)
        warnings: PartialFact warnings
        held: Mutations held back under the ``hold`` policy
        frozen_records: URI -> record, for every frozen resource
        reused: URIs of frozen resources reused from the previous publication
        index: Sealed reverse index over ``resources``
        duration_ms: Wall time of the build
    """

    resources: Dict[str, Resource]
    facts: FactSet
    warnings: List[PartialFact] = field(default_factory=list)
    held: List[FrozenResourceMutationDetected] = field(default_factory=list)
    frozen_records: Dict[str, FrozenRecord] = field(default_factory=dict)
    reused: List[str] = field(default_factory=list)
    index: Optional[ReverseIndex] = None
    duration_ms: float = 0.0

    def by_class(self, mutability: MutabilityClass) -> List[Resource]:
        return [r for r in self.resources.values() if r.mutability is mutability]

    def documents(self) -> Dict[str, Dict[str, Any]]:
        return {uri: r.document() for uri, r in self.resources.items()}

    def fingerprint(self) -> str:
        """Fingerprint over every resource's checksum."""
        return fingerprint({uri: r.checksum() for uri, r in sorted(self.resources.items())})


@dataclass
class _FrozenDraft:
    resource: Resource
    record: FrozenRecord
    majors: Tuple[str, ...]
    neighbour_majors: Tuple[str, ...] = ()


@dataclass
class _Attempt:
    resources: Dict[str, Resource]
    warnings: List[PartialFact]
    records: Dict[str, FrozenRecord]
    reused: List[str]
    mutations: List[FrozenResourceMutationDetected]
    index: ReverseIndex


def _patch_inputs(fact: ReleaseFact, facts: FactSet) -> Dict[str, Any]:
    return {
        "majorVersion": fact.major_version,
        "patchVersion": fact.patch_version,
        "releaseDate": fact.release_date.isoformat(),
        "isSecurity": fact.is_security,
        "cveIds": list(fact.cve_ids),
        "sdkPatches": list(fact.sdk_patches),
        "supportPhase": fact.support_phase.value,
        "cves": [facts.cves[c].to_dict() for c in fact.cve_ids if c in facts.cves],
    }


def _month_inputs(year: int, month: int, month_facts: Sequence[ReleaseFact], facts: FactSet) -> Dict[str, Any]:
    cve_ids = _unique(c for f in month_facts for c in f.cve_ids)
    return {
        "year": year,
        "month": month,
        "releases": [
            {
                "majorVersion": f.major_version,
                "patchVersion": f.patch_version,
                "releaseDate": f.release_date.isoformat(),
                "isSecurity": f.is_security,
                "cveIds": list(f.cve_ids),
                "sdkPatches": list(f.sdk_patches),
            }
            for f in month_facts
        ],
        "cves": [facts.cves[c].to_dict() for c in cve_ids if c in facts.cves],
    }


def _month_changes(old: Dict[str, Any], new: Dict[str, Any]) -> List[str]:
    old_releases = {r["patchVersion"]: r for r in old.get("releases", [])}
    new_releases = {r["patchVersion"]: r for r in new.get("releases", [])}
    lines = []
    for version in sorted(set(old_releases) | set(new_releases), key=version_key):
        if version not in old_releases:
            lines.append(f"release {version} added to a published month")
        elif version not in new_releases:
            lines.append(f"release {version} removed")
        elif old_releases[version] != new_releases[version]:
            lines.extend(
                f"{version} {line}" for line in diff_inputs(old_releases[version], new_releases[version])
            )
    if old.get("cves") != new.get("cves"):
        lines.append("CVE summaries changed")
    return lines


def _subtree_key(major: str) -> Tuple[Any, ...]:
    return version_key(major) if major != "*" else ((), ())


def _unique(values: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    result = []
    for v in values:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


class GraphBuilder:
    """Builds the full resource graph from facts.

    Example:
        >>> builder = GraphBuilder(BuildConfig(max_workers=4))
        >>> result = builder.build(facts, previous=PublishedGraph.open(out))
        >>> result.resources["/9.0/index.json"].get("latestPatch")
        '9.0.11'
    """

    def __init__(
        self,
        config: Optional[BuildConfig] = None,
        resolver: Optional[LinkResolver] = None,
    ) -> None:
        self.config = config or BuildConfig()
        self.resolver = resolver or LinkResolver()

    def build(self, facts: FactSet, previous: Optional[PreviousGraph] = None) -> BuildResult:
        """Build every resource, reconciling frozen ones with ``previous``.

        Raises:
            SchemaViolation: If a resource does not match its schema
            FrozenResourceMutationDetected: If a frozen resource would change
                and the policy is ``raise`` (or holding cannot resolve it)
        """
        start = time.perf_counter()
        held: List[FrozenResourceMutationDetected] = []
        held_majors: Set[str] = set()
        effective = facts

        while True:
            attempt = self._build_once(effective, previous)
            if not attempt.mutations:
                break

            for mutation in attempt.mutations:
                logger.error(
                    mutation.message,
                    extra={"uri": mutation.uri, "subtree": mutation.subtree},
                )
            if self.config.on_frozen_mutation != "hold" or previous is None or previous.facts is None:
                raise attempt.mutations[0]

            new_majors = {m.subtree for m in attempt.mutations} - held_majors
            if not new_majors:
                # Holding already reverted these subtrees and they still diverge.
                raise attempt.mutations[0]

            held.extend(m for m in attempt.mutations if m.subtree in new_majors)
            held_majors |= new_majors
            effective = self._hold(effective, previous.facts, sorted(new_majors))
            logger.warning(
                "Holding major version subtrees at their published facts",
                extra={"majors": sorted(held_majors)},
            )

        result = BuildResult(
            resources=dict(sorted(attempt.resources.items())),
            facts=effective,
            warnings=attempt.warnings,
            held=held,
            frozen_records=dict(sorted(attempt.records.items())),
            reused=sorted(attempt.reused),
            index=attempt.index,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        for warning in result.warnings:
            logger.warning(warning.message, extra={"uri": warning.uri, "missing": warning.missing})
        logger.info(
            "Graph built",
            extra={
                "resources": len(result.resources),
                "frozen": len(result.frozen_records),
                "reused": len(result.reused),
                "warnings": len(result.warnings),
                "held": len(result.held),
                "duration_ms": round(result.duration_ms, 1),
            },
        )
        return result

    @staticmethod
    def _hold(facts: FactSet, published: FactSet, majors: Sequence[str]) -> FactSet:
        """Swap the given majors back to their published facts and CVE records.

        A held major stays held on every later build for as long as its
        facts diverge from the published ones, and no new patch of that
        major is published meanwhile. A release added to an already
        published month is such a divergence that never goes away on its
        own: an operator has to correct the export (or publish the month
        afresh) before the major can move again.
        """
        published_by_major = published.by_major()
        held = facts
        cves = dict(facts.cves)
        for major in majors:
            old = published_by_major.get(major, [])
            held = held.replace_major(major, old)
            for fact in old:
                for cve_id in fact.cve_ids:
                    if cve_id in published.cves:
                        cves[cve_id] = published.cves[cve_id]
        return FactSet(facts=held.facts, cves=cves)

    def _build_once(self, facts: FactSet, previous: Optional[PreviousGraph]) -> _Attempt:
        index = ReverseIndex()
        by_major = facts.by_major()
        by_month = facts.by_month()

        month_chain = build_chain([
            ChainEntry(month_uri(y, m), (y, m), month_title(y, m)) for (y, m) in by_month
        ])

        warnings: List[PartialFact] = []
        mutable: List[Resource] = []
        drafts: List[_FrozenDraft] = []

        with ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="relgraph-build",
        ) as pool:
            major_futures = [
                pool.submit(self._build_major, major, group, facts)
                for major, group in sorted(by_major.items(), key=lambda kv: version_key(kv[0]))
            ]
            month_futures = [
                pool.submit(self._build_month, y, m, group, facts, month_chain, by_month)
                for (y, m), group in by_month.items()
            ]
            for future in major_futures:
                major_index, patch_drafts, major_warnings = future.result()
                mutable.append(major_index)
                drafts.extend(patch_drafts)
                warnings.extend(major_warnings)
            for future in month_futures:
                drafts.append(future.result())

        mutable.append(self._build_root(by_major))
        mutable.append(self._build_timeline(by_month))
        mutable.extend(self._build_years(by_month))

        resources: Dict[str, Resource] = {}
        for resource in mutable:
            index.add(resource)
            resources[resource.uri] = resource

        frozen, records, reused, mutations = self._reconcile(drafts, facts, previous)
        for resource in frozen:
            index.add(resource)
            resources[resource.uri] = resource
        index.seal()

        warnings.sort(key=lambda w: (w.uri, w.missing))
        return _Attempt(resources, warnings, records, reused, mutations, index)

    # Version axis

    def _build_major(
        self, major: str, group: List[ReleaseFact], facts: FactSet
    ) -> Tuple[MajorVersionIndex, List[_FrozenDraft], List[PartialFact]]:
        warnings: List[PartialFact] = []
        uri = major_uri(major)
        chain = build_chain([
            ChainEntry(patch_uri(major, f.patch_version), f.order_key, f.patch_version)
            for f in group
        ])

        drafts = []
        for fact in group:
            drafts.append(self._build_patch(fact, facts, chain, warnings))

        subject = MajorSubject(major, tuple(group))
        newest = group[-1]
        fields: Dict[str, Any] = {
            "version": major,
            "releaseType": newest.release_type.value,
            "phase": newest.support_phase.value,
        }
        ga = next((f for f in group if not is_prerelease(f.patch_version)), None)
        if ga is not None:
            fields["gaDate"] = ga.release_date.isoformat()
        if newest.eol_date is not None:
            fields["eolDate"] = newest.eol_date.isoformat()
        elif newest.support_phase is not SupportPhase.PREVIEW:
            warnings.append(PartialFact(uri, "eolDate", "no end-of-life date recorded"))
        fields["latestPatch"] = subject.latest_patch.patch_version
        if subject.latest_security_patch is not None:
            fields["latestSecurityPatch"] = subject.latest_security_patch.patch_version

        links = self.resolver.resolve(
            ResourceKind.MAJOR, uri, subject,
            title=major_title(major),
            up=(ROOT_URI, ROOT_TITLE),
        )
        patches = [self.patch_summary(f, ResourceKind.MAJOR) for f in reversed(group)]
        index = MajorVersionIndex(uri, fields, links, {"patches": patches})
        return index, drafts, warnings

    def _build_patch(
        self,
        fact: ReleaseFact,
        facts: FactSet,
        chain: Dict[str, ChainLinks],
        warnings: List[PartialFact],
    ) -> _FrozenDraft:
        major = fact.major_version
        uri = patch_uri(major, fact.patch_version)

        fields = self._summary_fields(fact)
        fields["supportPhase"] = fact.support_phase.value
        if "cveIds" not in fields:
            warnings.append(PartialFact(uri, "cveIds", "security release without CVE ids"))
        if not fact.sdk_patches:
            warnings.append(PartialFact(uri, "latest-sdk", "no SDK banding recorded"))

        links = self.resolver.resolve(
            ResourceKind.PATCH, uri, fact,
            title=fact.patch_version,
            up=(major_uri(major), major_title(major)),
            chain=chain[uri],
        )

        embedded: Dict[str, List[EmbeddedItem]] = {}
        if fact.sdk_patches:
            embedded["sdk"] = [
                EmbeddedItem(
                    {"version": sdk},
                    (Link("self", sdk_uri(major, sdk), f"SDK {sdk}", JSON_MEDIA_TYPE),),
                )
                for sdk in sorted(fact.sdk_patches, key=version_key, reverse=True)
            ]
        disclosures = self._disclosures(fact.cve_ids, facts, uri, warnings)
        if disclosures:
            embedded["disclosures"] = disclosures

        resource = PatchIndex(uri, fields, links, embedded)
        inputs = _patch_inputs(fact, facts)
        record = FrozenRecord(
            uri=uri,
            kind=ResourceKind.PATCH.value,
            inputs=inputs,
            inputs_fingerprint=fingerprint(inputs),
            prev=chain[uri].prev.uri if chain[uri].prev else None,
            next=chain[uri].next.uri if chain[uri].next else None,
        )
        return _FrozenDraft(resource, record, (major,))

    @staticmethod
    def _summary_fields(fact: ReleaseFact) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "version": fact.patch_version,
            "date": fact.release_date.isoformat(),
            "security": fact.is_security,
        }
        if fact.cve_ids or not fact.is_security:
            fields["cveIds"] = list(fact.cve_ids)
        if fact.sdk_patches:
            fields["sdkPatches"] = list(fact.sdk_patches)
        return fields

    def patch_summary(self, fact: ReleaseFact, source: ResourceKind) -> EmbeddedItem:
        """PatchSummary item, shared by the version and time axes."""
        links = self.resolver.resolve_item(
            source, "patches",
            patch_uri(fact.major_version, fact.patch_version),
            fact,
            title=fact.patch_version,
        )
        return EmbeddedItem(self._summary_fields(fact), tuple(links))

    @staticmethod
    def _disclosures(
        cve_ids: Iterable[str],
        facts: FactSet,
        uri: str,
        warnings: Optional[List[PartialFact]],
    ) -> List[EmbeddedItem]:
        items = []
        for cve_id in cve_ids:
            record = facts.cves.get(cve_id)
            if record is None:
                if warnings is not None:
                    warnings.append(
                        PartialFact(uri, f"disclosures[{cve_id}]", "no CVE record in the feed")
                    )
                items.append(EmbeddedItem({"id": cve_id}))
                continue
            fields: Dict[str, Any] = {"id": record.cve_id}
            if record.title:
                fields["title"] = record.title
            if record.cvss_score is not None:
                fields["cvssScore"] = record.cvss_score
            links = tuple(
                Link("fix-commit", commit, None, "text/html") for commit in record.fix_commits
            )
            items.append(EmbeddedItem(fields, links))
        return items

    def _build_root(self, by_major: Dict[str, List[ReleaseFact]]) -> RootIndex:
        newest = {major: group[-1] for major, group in by_major.items()}
        released = [m for m, f in newest.items() if f.support_phase is not SupportPhase.PREVIEW]
        lts = [m for m in released if newest[m].release_type.value == "lts"]

        fields: Dict[str, Any] = {}
        extra: List[Link] = []
        if released:
            latest_major = max(released, key=version_key)
            fields["latestMajorVersion"] = latest_major
            extra.append(Link("latest", major_uri(latest_major), major_title(latest_major)))
        if lts:
            latest_lts = max(lts, key=version_key)
            fields["latestLtsVersion"] = latest_lts
            extra.append(Link("latest-lts", major_uri(latest_lts), major_title(latest_lts)))
        extra.append(Link("timeline", TIMELINE_URI, TIMELINE_TITLE))

        majors = []
        for major in sorted(newest, key=version_key, reverse=True):
            fact = newest[major]
            item: Dict[str, Any] = {
                "version": major,
                "releaseType": fact.release_type.value,
                "supported": fact.support_phase.supported,
            }
            if fact.eol_date is not None:
                item["eolDate"] = fact.eol_date.isoformat()
            majors.append(EmbeddedItem(item, (Link("self", major_uri(major), major_title(major)),)))

        links = self.resolver.resolve(ResourceKind.ROOT, ROOT_URI, title=ROOT_TITLE, extra=extra)
        return RootIndex(ROOT_URI, fields, links, {"majors": majors})

    # Time axis

    def _build_timeline(self, by_month: Dict[Tuple[int, int], List[ReleaseFact]]) -> TimelineIndex:
        years = sorted({y for (y, _) in by_month}, reverse=True)
        items = [
            EmbeddedItem({"year": str(y)}, (Link("self", year_uri(y), str(y)),))
            for y in years
        ]
        links = self.resolver.resolve(
            ResourceKind.TIMELINE, TIMELINE_URI, title=TIMELINE_TITLE, up=(ROOT_URI, ROOT_TITLE)
        )
        return TimelineIndex(TIMELINE_URI, {}, links, {"years": items})

    def _build_years(self, by_month: Dict[Tuple[int, int], List[ReleaseFact]]) -> List[YearIndex]:
        years: Dict[int, List[Tuple[int, List[ReleaseFact]]]] = {}
        for (y, m), group in by_month.items():
            years.setdefault(y, []).append((m, group))

        result = []
        for y in sorted(years):
            months = []
            for m, group in sorted(years[y], reverse=True):
                months.append(EmbeddedItem(
                    {
                        "month": month_key(m),
                        "releases": len(group),
                        "security": any(f.is_security for f in group),
                        "cveCount": len(_unique(c for f in group for c in f.cve_ids)),
                    },
                    (Link("self", month_uri(y, m), month_title(y, m)),),
                ))
            uri = year_uri(y)
            links = self.resolver.resolve(
                ResourceKind.YEAR, uri, title=str(y), up=(TIMELINE_URI, TIMELINE_TITLE)
            )
            result.append(YearIndex(uri, {"year": str(y)}, links, {"months": months}))
        return result

    def _build_month(
        self,
        year: int,
        month: int,
        group: List[ReleaseFact],
        facts: FactSet,
        chain: Dict[str, ChainLinks],
        by_month: Dict[Tuple[int, int], List[ReleaseFact]],
    ) -> _FrozenDraft:
        uri = month_uri(year, month)
        cve_ids = _unique(c for f in group for c in f.cve_ids)
        fields = {
            "year": str(year),
            "month": month_key(month),
            "releases": len(group),
            "cveIds": cve_ids,
        }
        links = self.resolver.resolve(
            ResourceKind.MONTH, uri, MonthSubject(year, month, tuple(group)),
            title=month_title(year, month),
            up=(year_uri(year), str(year)),
            chain=chain[uri],
        )
        embedded: Dict[str, List[EmbeddedItem]] = {
            "patches": [self.patch_summary(f, ResourceKind.MONTH) for f in reversed(group)],
        }
        disclosures = self._disclosures(cve_ids, facts, uri, None)
        if disclosures:
            embedded["disclosures"] = disclosures

        resource = MonthIndex(uri, fields, links, embedded)
        inputs = _month_inputs(year, month, group, facts)
        links_of = chain[uri]
        record = FrozenRecord(
            uri=uri,
            kind=ResourceKind.MONTH.value,
            inputs=inputs,
            inputs_fingerprint=fingerprint(inputs),
            prev=links_of.prev.uri if links_of.prev else None,
            next=links_of.next.uri if links_of.next else None,
        )

        neighbours: Set[str] = set()
        for entry in (links_of.prev, links_of.next):
            if entry is not None:
                key = parse_uri(entry.uri).params
                neighbours.update(
                    f.major_version for f in by_month[(int(key["year"]), int(key["month"]))]
                )
        majors = tuple(sorted({f.major_version for f in group}, key=version_key))
        return _FrozenDraft(resource, record, majors, tuple(sorted(neighbours, key=version_key)))

    # Frozen reconciliation

    def _reconcile(
        self,
        drafts: List[_FrozenDraft],
        facts: FactSet,
        previous: Optional[PreviousGraph],
    ) -> Tuple[List[Resource], Dict[str, FrozenRecord], List[str], List[FrozenResourceMutationDetected]]:
        resources: List[Resource] = []
        records: Dict[str, FrozenRecord] = {}
        reused: List[str] = []
        mutations: List[FrozenResourceMutationDetected] = []

        if previous is None:
            for draft in drafts:
                resources.append(draft.resource)
                records[draft.record.uri] = draft.record
            return resources, records, reused, mutations

        old_records = previous.frozen_records
        changed = self._changed_majors(previous.facts, facts)

        for draft in sorted(drafts, key=lambda d: d.record.uri):
            new = draft.record
            old = old_records.get(new.uri)
            if old is None:
                resources.append(draft.resource)
                records[new.uri] = new
                continue

            input_changes: List[str] = []
            chain_changes: List[str] = []
            if old.inputs_fingerprint != new.inputs_fingerprint:
                if new.kind == ResourceKind.MONTH.value:
                    input_changes.extend(_month_changes(old.inputs, new.inputs))
                else:
                    input_changes.extend(diff_inputs(old.inputs, new.inputs))
            if old.prev != new.prev:
                chain_changes.append(f"prev: {old.prev!r} -> {new.prev!r}")
            if old.next is not None and old.next != new.next:
                chain_changes.append(f"next: {old.next!r} -> {new.next!r}")

            if input_changes or chain_changes:
                # Inputs change through the resource's own majors, chain links
                # through whichever neighbour was inserted or removed.
                majors: Set[str] = set()
                if input_changes:
                    majors.update(self._implicated(draft.majors, draft.majors, changed))
                if chain_changes:
                    majors.update(self._implicated(
                        draft.majors + draft.neighbour_majors, draft.majors, changed
                    ))
                for major in sorted(majors, key=_subtree_key):
                    mutations.append(
                        FrozenResourceMutationDetected(new.uri, major, input_changes + chain_changes)
                    )
                continue

            resource = self._reuse(draft, old, previous)
            resources.append(resource)
            records[new.uri] = replace(old, next=new.next)
            reused.append(new.uri)

        built = {d.record.uri for d in drafts}
        for uri in sorted(set(old_records) - built):
            old = old_records[uri]
            if old.kind == ResourceKind.PATCH.value:
                own = (old.inputs["majorVersion"],)
            else:
                own = tuple(_unique(r["majorVersion"] for r in old.inputs.get("releases", [])))
            for major in self._implicated(own, own, changed):
                mutations.append(
                    FrozenResourceMutationDetected(uri, major, ["published resource no longer built"])
                )

        return resources, records, reused, mutations

    def _reuse(self, draft: _FrozenDraft, old: FrozenRecord, previous: PreviousGraph) -> Resource:
        """Published document of an unchanged frozen resource, plus a new ``next``."""
        document = previous.document(old.uri)
        if document is None:
            logger.warning(
                "Published document missing; regenerating frozen resource",
                extra={"uri": old.uri},
            )
            return draft.resource

        resource = Resource.from_document(document, old.uri)
        if old.next is None and draft.record.next is not None:
            next_link = draft.resource.link("next")
            resource = resource.with_link(next_link)
            logger.info(
                "Appending next link to frozen resource",
                extra={"uri": old.uri, "next": next_link.href},
            )
        return resource

    @staticmethod
    def _changed_majors(published: Optional[FactSet], facts: FactSet) -> Set[str]:
        if published is None:
            return set()
        old = {m: [f.to_dict() for f in g] for m, g in published.by_major().items()}
        new = {m: [f.to_dict() for f in g] for m, g in facts.by_major().items()}
        return {m for m in set(old) | set(new) if old.get(m) != new.get(m)}

    @staticmethod
    def _implicated(
        candidates: Sequence[str], own: Sequence[str], changed: Set[str]
    ) -> List[str]:
        """Majors whose facts explain a mutation, falling back to the owner."""
        implicated = sorted({m for m in candidates if m in changed}, key=version_key)
        if implicated:
            return implicated
        return sorted(set(own), key=version_key) or ["*"]
