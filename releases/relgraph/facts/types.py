"""
Release fact records consumed by the graph builder.

This module defines the input feed types:
- SupportPhase / ReleaseType: Lifecycle enums
- ReleaseFact: One shipped patch of one major version
- CveRecord: Projection of a CVE used for disclosure summaries
- FactSet: The complete, validated set of facts for one build

Invariants:
    - Facts are immutable once loaded
    - patch_version always starts with major_version
    - A FactSet holds at most one fact per patch version
    - Within a major version, facts are totally ordered by
      (release_date, patch version)

How to change safely:
    - New optional fields must default so old exports still load
    - Never change the wire name of an existing field; published frozen
      resources record their inputs in this form
"""

from __future__ import annotations

import hashlib
import json
from collections import defaultdict
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..versions import version_key


class SupportPhase(Enum):
    """Support phase of a major version at the time a patch shipped."""

    PREVIEW = "preview"
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    EOL = "eol"

    @property
    def supported(self) -> bool:
        return self in (SupportPhase.ACTIVE, SupportPhase.MAINTENANCE)


class ReleaseType(Enum):
    """Support commitment of a major version."""

    LTS = "lts"
    STS = "sts"

    @classmethod
    def for_major(cls, major_version: str) -> ReleaseType:
        """Even majors are LTS, odd majors are STS."""
        major = int(major_version.split(".")[0])
        return cls.LTS if major % 2 == 0 else cls.STS


def _parse_date(value: Any, name: str) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be an ISO date string, got {type(value).__name__}")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"'{name}' is not a valid ISO date: '{value}'") from None


def _parse_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{name}' must be a boolean, got {type(value).__name__}")
    return value


def _parse_str_list(value: Any, name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{name}' must be a list of strings")
    return tuple(value)


@dataclass(frozen=True)
class ReleaseFact:
    """A single patch release of a major version.

    Attributes:
        major_version: Major version line, e.g. "9.0"
        patch_version: Patch version, e.g. "9.0.10"
        release_date: Day the patch shipped
        is_security: Whether the patch fixes security issues
        cve_ids: CVEs fixed by this patch
        sdk_patches: SDK versions shipped with this patch
        support_phase: Support phase of the major version when it shipped
        eol_date: Scheduled end of life of the major version
        release_type: LTS or STS (derived from the major when absent)

    Example:
        >>> fact = ReleaseFact(
        ...     major_version="9.0",
        ...     patch_version="9.0.10",
        ...     release_date=date(2025, 10, 14),
        ...     is_security=True,
        ...     cve_ids=("CVE-2025-55247",),
        ... )
    """

    major_version: str
    patch_version: str
    release_date: date
    is_security: bool = False
    cve_ids: Tuple[str, ...] = ()
    sdk_patches: Tuple[str, ...] = ()
    support_phase: SupportPhase = SupportPhase.ACTIVE
    eol_date: Optional[date] = None
    release_type: Optional[ReleaseType] = None

    def __post_init__(self) -> None:
        """Validate the fact."""
        if not self.major_version:
            raise ValueError("major_version cannot be empty")
        if not self.patch_version.startswith(self.major_version + "."):
            raise ValueError(
                f"patch_version '{self.patch_version}' does not belong to "
                f"major_version '{self.major_version}'"
            )
        version_key(self.patch_version)
        if self.release_type is None:
            object.__setattr__(self, "release_type", ReleaseType.for_major(self.major_version))

    @property
    def year_month(self) -> Tuple[int, int]:
        return self.release_date.year, self.release_date.month

    @property
    def order_key(self) -> Tuple[Any, ...]:
        """Release-date order, ties broken by version."""
        return self.release_date, version_key(self.patch_version)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire form."""
        return {
            "majorVersion": self.major_version,
            "patchVersion": self.patch_version,
            "releaseDate": self.release_date.isoformat(),
            "isSecurity": self.is_security,
            "cveIds": list(self.cve_ids),
            "sdkPatches": list(self.sdk_patches),
            "supportPhase": self.support_phase.value,
            "eolDate": self.eol_date.isoformat() if self.eol_date else None,
            "releaseType": self.release_type.value if self.release_type else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ReleaseFact:
        """Create from the camelCase wire form.

        Raises:
            ValueError: If required fields are missing or malformed
        """
        required = ["majorVersion", "patchVersion", "releaseDate"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        eol = data.get("eolDate")
        release_type = data.get("releaseType")
        return cls(
            major_version=str(data["majorVersion"]),
            patch_version=str(data["patchVersion"]),
            release_date=_parse_date(data["releaseDate"], "releaseDate"),
            is_security=_parse_bool(data.get("isSecurity", False), "isSecurity"),
            cve_ids=_parse_str_list(data.get("cveIds"), "cveIds"),
            sdk_patches=_parse_str_list(data.get("sdkPatches"), "sdkPatches"),
            support_phase=SupportPhase(data.get("supportPhase", "active")),
            eol_date=_parse_date(eol, "eolDate") if eol else None,
            release_type=ReleaseType(release_type) if release_type else None,
        )


@dataclass(frozen=True)
class CveRecord:
    """Projected summary of a CVE.

    Attributes:
        cve_id: CVE identifier
        title: Short description
        cvss_score: CVSS base score, if scored
        fix_commits: URLs of commits fixing the issue
    """

    cve_id: str
    title: str = ""
    cvss_score: Optional[float] = None
    fix_commits: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.cve_id,
            "title": self.title,
            "cvssScore": self.cvss_score,
            "fixCommits": list(self.fix_commits),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CveRecord:
        if "id" not in data:
            raise ValueError("Missing required fields: ['id']")
        score = data.get("cvssScore")
        return cls(
            cve_id=str(data["id"]),
            title=str(data.get("title", "")),
            cvss_score=float(score) if score is not None else None,
            fix_commits=_parse_str_list(data.get("fixCommits"), "fixCommits"),
        )


@dataclass(frozen=True)
class FactSet:
    """Complete input for one build run.

    Attributes:
        facts: Every release fact, sorted by (major, release order)
        cves: CVE records keyed by id

    Raises:
        ValueError: If two different facts share a patch version
    """

    facts: Tuple[ReleaseFact, ...] = ()
    cves: Mapping[str, CveRecord] = dataclass_field(default_factory=dict)

    def __post_init__(self) -> None:
        by_version: Dict[str, ReleaseFact] = {}
        unique: List[ReleaseFact] = []
        for fact in self.facts:
            existing = by_version.get(fact.patch_version)
            if existing is None:
                by_version[fact.patch_version] = fact
                unique.append(fact)
            elif existing != fact:
                raise ValueError(f"Conflicting facts for patch version '{fact.patch_version}'")
        unique.sort(key=lambda f: (version_key(f.major_version), f.order_key))
        object.__setattr__(self, "facts", tuple(unique))

    def __iter__(self) -> Iterator[ReleaseFact]:
        return iter(self.facts)

    def __len__(self) -> int:
        return len(self.facts)

    def get(self, patch_version: str) -> Optional[ReleaseFact]:
        for fact in self.facts:
            if fact.patch_version == patch_version:
                return fact
        return None

    def by_major(self) -> Dict[str, List[ReleaseFact]]:
        """Facts grouped by major version, each group in release order."""
        groups: Dict[str, List[ReleaseFact]] = defaultdict(list)
        for fact in self.facts:
            groups[fact.major_version].append(fact)
        return {major: sorted(group, key=lambda f: f.order_key) for major, group in groups.items()}

    def by_month(self) -> Dict[Tuple[int, int], List[ReleaseFact]]:
        """Facts grouped by (year, month) of release, each group in release order."""
        groups: Dict[Tuple[int, int], List[ReleaseFact]] = defaultdict(list)
        for fact in self.facts:
            groups[fact.year_month].append(fact)
        return {
            key: sorted(group, key=lambda f: (f.order_key, version_key(f.major_version)))
            for key, group in sorted(groups.items())
        }

    def replace_major(self, major_version: str, facts: List[ReleaseFact]) -> FactSet:
        """Return a copy with every fact of one major version swapped out."""
        kept = [f for f in self.facts if f.major_version != major_version]
        return FactSet(facts=tuple(kept + list(facts)), cves=self.cves)

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON of every fact and CVE record."""
        payload = {
            "facts": [f.to_dict() for f in self.facts],
            "cves": [self.cves[k].to_dict() for k in sorted(self.cves)],
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
