"""
URI hierarchy of the published graph.

Paths double as cache keys, so this module is the one external contract
that must never be renumbered without a schema version bump.

    /index.json                              RootIndex
    /{major}/index.json                      MajorVersionIndex
    /{major}/{patch}/index.json              PatchIndex
    /{major}/sdk/{sdk}.json                  SDK release (external)
    /timeline/index.json                     TimelineIndex
    /timeline/{year}/index.json              YearIndex
    /timeline/{year}/{month}/index.json      MonthIndex
    /timeline/{year}/{month}/cve.json        CVE document (external)

Months are always two digits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Union

from ..schema.types import ResourceKind

ROOT_URI = "/index.json"
TIMELINE_URI = "/timeline/index.json"


def month_key(month: Union[int, str]) -> str:
    return f"{int(month):02d}"


def major_uri(major: str) -> str:
    return f"/{major}/index.json"


def patch_uri(major: str, patch: str) -> str:
    return f"/{major}/{patch}/index.json"


def sdk_uri(major: str, sdk_version: str) -> str:
    return f"/{major}/sdk/{sdk_version}.json"


def year_uri(year: Union[int, str]) -> str:
    return f"/timeline/{year}/index.json"


def month_uri(year: Union[int, str], month: Union[int, str]) -> str:
    return f"/timeline/{year}/{month_key(month)}/index.json"


def cve_json_uri(year: Union[int, str], month: Union[int, str]) -> str:
    return f"/timeline/{year}/{month_key(month)}/cve.json"


@dataclass(frozen=True)
class ParsedUri:
    """A graph path resolved to its kind and path parameters."""

    kind: ResourceKind
    params: Dict[str, str]


_MAJOR = r"(?P<major>\d+\.\d+)"
_YEAR = r"(?P<year>\d{4})"
_MONTH = r"(?P<month>\d{2})"

_PATTERNS = (
    (ResourceKind.ROOT, re.compile(r"^/index\.json$")),
    (ResourceKind.TIMELINE, re.compile(r"^/timeline/index\.json$")),
    (ResourceKind.YEAR, re.compile(rf"^/timeline/{_YEAR}/index\.json$")),
    (ResourceKind.MONTH, re.compile(rf"^/timeline/{_YEAR}/{_MONTH}/index\.json$")),
    (ResourceKind.CVE_DOCUMENT, re.compile(rf"^/timeline/{_YEAR}/{_MONTH}/cve\.json$")),
    (ResourceKind.MAJOR, re.compile(rf"^/{_MAJOR}/index\.json$")),
    (ResourceKind.SDK_RELEASE, re.compile(rf"^/{_MAJOR}/sdk/(?P<sdk>[^/]+)\.json$")),
    (ResourceKind.PATCH, re.compile(rf"^/{_MAJOR}/(?P<patch>\d+\.\d+\.[^/]+)/index\.json$")),
)


def parse_uri(href: str) -> Optional[ParsedUri]:
    """Resolve a root-relative path to the kind it addresses.

    Returns:
        ParsedUri, or None if the path is not part of the hierarchy
    """
    for kind, pattern in _PATTERNS:
        match = pattern.match(href)
        if match:
            return ParsedUri(kind=kind, params=match.groupdict())
    return None


def kind_of(href: str) -> Optional[ResourceKind]:
    parsed = parse_uri(href)
    return parsed.kind if parsed else None
