"""
Schemas of the six materialized resource kinds.

Every field carries its volatility and, where it is not fixed, the fact
identity the consistency validator indexes it under. Field, relation and
collection order here is the serialization order of published documents.

How to change safely:
    - Append new optional fields; do not reorder existing ones, since that
      changes the bytes of every frozen document on its next rebuild
    - A new currency field must go into exactly one warm kind
"""

from __future__ import annotations

from .types import CollectionSpec, KindSchema, ResourceKind, field

PHASES = ("preview", "active", "maintenance", "eol")
RELEASE_TYPES = ("lts", "sts")

# Shared by MajorVersionIndex and MonthIndex so both axes embed identical bytes.
PATCH_SUMMARY = CollectionSpec(
    name="patches",
    fields=(
        field("version", "str", required=True),
        field("date", "date", required=True),
        field("security", "bool", required=True),
        field("cveIds", "list_str"),
        field("sdkPatches", "list_str"),
    ),
    relations=("self", "release-month", "cve-json"),
)

DISCLOSURES = CollectionSpec(
    name="disclosures",
    fields=(
        field("id", "str", required=True),
        field("title", "str"),
        field("cvssScore", "number"),
    ),
    relations=("fix-commit",),
)

ROOT_SCHEMA = KindSchema(
    kind=ResourceKind.ROOT,
    fields=(
        field(
            "latestMajorVersion", "str",
            volatility="lifecycle", fact="latest-major",
        ),
        field(
            "latestLtsVersion", "str",
            volatility="lifecycle", fact="latest-lts-major",
        ),
    ),
    relations=("self", "latest", "latest-lts", "timeline"),
    collections=(
        CollectionSpec(
            name="majors",
            fields=(
                field("version", "str", required=True),
                field("releaseType", "enum", enum_values=RELEASE_TYPES),
                field(
                    "supported", "bool",
                    volatility="lifecycle", fact="supported:{version}",
                ),
                field(
                    "eolDate", "date",
                    volatility="lifecycle", fact="eol-date:{version}",
                ),
            ),
        ),
    ),
    description="Entry point: one summary per major version, no patch data",
)

MAJOR_SCHEMA = KindSchema(
    kind=ResourceKind.MAJOR,
    fields=(
        field("version", "str", required=True),
        field("releaseType", "enum", enum_values=RELEASE_TYPES),
        field("phase", "enum", enum_values=PHASES, volatility="lifecycle", fact="phase:{version}"),
        field("gaDate", "date"),
        field("eolDate", "date", volatility="lifecycle", fact="eol-date:{version}"),
        field("latestPatch", "str", volatility="currency", fact="latest-patch:{version}"),
        field(
            "latestSecurityPatch", "str",
            volatility="currency", fact="latest-security-patch:{version}",
        ),
    ),
    relations=("self", "up", "latest", "latest-security"),
    collections=(PATCH_SUMMARY,),
    description="Canonical owner of a major version's patch currency",
)

PATCH_SCHEMA = KindSchema(
    kind=ResourceKind.PATCH,
    fields=(
        field("version", "str", required=True),
        field("date", "date", required=True),
        field("security", "bool", required=True),
        field("cveIds", "list_str"),
        field("sdkPatches", "list_str"),
        field("supportPhase", "enum", enum_values=PHASES),
    ),
    relations=("self", "up", "prev", "next", "latest-sdk", "release-month", "cve-json"),
    collections=(
        CollectionSpec(name="sdk", fields=(field("version", "str", required=True),)),
        DISCLOSURES,
    ),
    description="One shipped patch; written once",
)

TIMELINE_SCHEMA = KindSchema(
    kind=ResourceKind.TIMELINE,
    relations=("self", "up"),
    collections=(
        CollectionSpec(name="years", fields=(field("year", "str", required=True),)),
    ),
    description="Entry point of the time axis",
)

YEAR_SCHEMA = KindSchema(
    kind=ResourceKind.YEAR,
    fields=(field("year", "str", required=True),),
    relations=("self", "up"),
    collections=(
        CollectionSpec(
            name="months",
            fields=(
                field("month", "str", required=True),
                field("releases", "number"),
                field("security", "bool"),
                field("cveCount", "number"),
            ),
        ),
    ),
    description="Months of one year that saw releases",
)

MONTH_SCHEMA = KindSchema(
    kind=ResourceKind.MONTH,
    fields=(
        field("year", "str", required=True),
        field("month", "str", required=True),
        field("releases", "number"),
        field("cveIds", "list_str"),
    ),
    relations=("self", "up", "prev", "next", "cve-json"),
    collections=(PATCH_SUMMARY, DISCLOSURES),
    description="Every patch shipped in one month; written once",
)

DEFAULT_SCHEMAS = (
    ROOT_SCHEMA,
    MAJOR_SCHEMA,
    PATCH_SCHEMA,
    TIMELINE_SCHEMA,
    YEAR_SCHEMA,
    MONTH_SCHEMA,
)
