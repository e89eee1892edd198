"""
Core type definitions for the release graph resource model.

This module defines the foundational types every resource kind is built on:
- ResourceKind: The closed set of node kinds (plus external link targets)
- MutabilityClass: How often a kind is rewritten (cold/warm/frozen)
- Volatility: How often a field's value can change
- FieldSpec: One permitted field, with its fact identity
- CollectionSpec: One permitted ``_embedded`` collection
- KindSchema: The complete allow-list for a resource kind

Invariants:
    - The set of kinds is closed; consumers dispatch on the ``kind`` string
    - A field's volatility never exceeds what its kind's mutability allows
      (checked by the consistency validator, not here)
    - Fact identity templates only reference fields of the same object

How to change safely:
    - Add new optional fields with new names; never rename a published field
    - Adding a relation name is compatible; removing one is not
    - Lowering a kind's mutability (e.g. warm -> frozen) requires a new
      URI hierarchy version

Example:
    >>> from releases.relgraph.schema.types import KindSchema, ResourceKind, field
    >>> schema = KindSchema(
    ...     kind=ResourceKind.YEAR,
    ...     fields=(field("year", "str", required=True),),
    ...     relations=("self", "up"),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from datetime import date
from enum import Enum
from typing import Any, Mapping

HAL_MEDIA_TYPE = "application/hal+json"
JSON_MEDIA_TYPE = "application/json"
SCHEMA_BASE_URL = "https://release-graph.dev/schemas/v1"


class MutabilityClass(Enum):
    """How often resources of a kind are rewritten."""

    FROZEN = "frozen"  # written once, never again
    COLD = "cold"  # at most about once a year
    WARM = "warm"  # at most about once a month

    @property
    def is_mutable(self) -> bool:
        return self is not MutabilityClass.FROZEN

    @property
    def max_volatility(self) -> Volatility:
        """Fastest-changing field volatility this class may inline."""
        return {
            MutabilityClass.FROZEN: Volatility.FIXED,
            MutabilityClass.COLD: Volatility.LIFECYCLE,
            MutabilityClass.WARM: Volatility.CURRENCY,
        }[self]


class Volatility(Enum):
    """How often the value behind a field can change."""

    FIXED = "fixed"  # never changes once published
    LIFECYCLE = "lifecycle"  # new major version or support-phase flip
    CURRENCY = "currency"  # every patch release

    @property
    def rank(self) -> int:
        return {Volatility.FIXED: 0, Volatility.LIFECYCLE: 1, Volatility.CURRENCY: 2}[self]


class ResourceKind(Enum):
    """Closed set of resource kinds.

    The last two members are external targets: the graph links to them but
    never materializes them.
    """

    ROOT = "root-index"
    MAJOR = "major-version-index"
    PATCH = "patch-index"
    TIMELINE = "timeline-index"
    YEAR = "year-index"
    MONTH = "month-index"
    CVE_DOCUMENT = "cve-document"
    SDK_RELEASE = "sdk-release"

    @classmethod
    def from_str(cls, value: str) -> ResourceKind:
        """Convert the ``kind`` discriminator string to a ResourceKind.

        Raises:
            ValueError: If value is not a known kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid resource kind '{value}'. Valid kinds: {valid}")

    @property
    def mutability(self) -> MutabilityClass:
        return _KIND_MUTABILITY[self]

    @property
    def is_external(self) -> bool:
        return self in (ResourceKind.CVE_DOCUMENT, ResourceKind.SDK_RELEASE)

    @property
    def schema_uri(self) -> str:
        return f"{SCHEMA_BASE_URL}/{self.value}.json"


_KIND_MUTABILITY = {
    ResourceKind.ROOT: MutabilityClass.COLD,
    ResourceKind.TIMELINE: MutabilityClass.COLD,
    ResourceKind.MAJOR: MutabilityClass.WARM,
    ResourceKind.YEAR: MutabilityClass.WARM,
    ResourceKind.PATCH: MutabilityClass.FROZEN,
    ResourceKind.MONTH: MutabilityClass.FROZEN,
    ResourceKind.CVE_DOCUMENT: MutabilityClass.FROZEN,
    ResourceKind.SDK_RELEASE: MutabilityClass.FROZEN,
}


class FieldType(Enum):
    """Value types a resource field may hold."""

    STRING = "str"
    DATE = "date"  # ISO 8601 calendar date string
    BOOLEAN = "bool"
    NUMBER = "number"
    STRING_LIST = "list_str"
    ENUM = "enum"

    @classmethod
    def from_str(cls, value: str) -> FieldType:
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field type '{value}'. Valid types: {valid}")


def _is_iso_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


_VALIDATORS = {
    FieldType.STRING: lambda v: isinstance(v, str),
    FieldType.DATE: _is_iso_date,
    FieldType.BOOLEAN: lambda v: isinstance(v, bool),
    FieldType.NUMBER: lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    FieldType.STRING_LIST: lambda v: isinstance(v, list) and all(isinstance(i, str) for i in v),
}


@dataclass(frozen=True)
class FieldSpec:
    """One field a resource (or embedded item) may carry.

    Attributes:
        name: JSON key
        type: Value type
        required: Whether the field must be present
        volatility: How often the value can change
        fact: Fact identity template, e.g. ``latest-patch:{version}``;
            formatted with the sibling fields of the same object
        enum_values: Valid values if type is ENUM
        description: Human-readable description
    """

    name: str
    type: FieldType
    required: bool = False
    volatility: Volatility = Volatility.FIXED
    fact: str | None = None
    enum_values: tuple[str, ...] | None = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field spec."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if self.name.startswith("_") or self.name in ("$schema", "kind"):
            raise ValueError(f"Field name '{self.name}' is reserved")
        if self.type == FieldType.ENUM and not self.enum_values:
            raise ValueError(f"enum_values required for ENUM field '{self.name}'")
        if self.volatility != Volatility.FIXED and not self.fact:
            raise ValueError(f"Non-fixed field '{self.name}' needs a fact identity template")

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Validate a value against this field spec.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if value is None:
            if self.required:
                return False, f"Field '{self.name}' is required"
            return False, f"Field '{self.name}' must be omitted rather than null"

        if self.type == FieldType.ENUM:
            if not isinstance(value, str):
                return False, f"Field '{self.name}' must be a string, got {type(value).__name__}"
            if value not in (self.enum_values or ()):
                return False, f"Field '{self.name}' must be one of {self.enum_values}, got '{value}'"
            return True, None

        if not _VALIDATORS[self.type](value):
            return False, f"Field '{self.name}' has invalid value for type {self.type.value}"
        return True, None

    def fact_identity(self, context: Mapping[str, Any]) -> str | None:
        """Resolve the fact identity for this field within one object."""
        if not self.fact:
            return None
        try:
            return self.fact.format_map(context)
        except KeyError:
            return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation for fingerprinting."""
        result: dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "volatility": self.volatility.value,
        }
        if self.required:
            result["required"] = True
        if self.fact:
            result["fact"] = self.fact
        if self.enum_values:
            result["enum_values"] = list(self.enum_values)
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldSpec:
        return cls(
            name=data["name"],
            type=FieldType.from_str(data["type"]),
            required=data.get("required", False),
            volatility=Volatility(data.get("volatility", "fixed")),
            fact=data.get("fact"),
            enum_values=tuple(data["enum_values"]) if data.get("enum_values") else None,
            description=data.get("description", ""),
        )


def field(
    name: str,
    type: str | FieldType,
    *,
    required: bool = False,
    volatility: str | Volatility = Volatility.FIXED,
    fact: str | None = None,
    enum_values: tuple[str, ...] | None = None,
    description: str = "",
) -> FieldSpec:
    """Convenience function to create a FieldSpec.

    Example:
        >>> latest = field("latestPatch", "str", volatility="currency",
        ...                fact="latest-patch:{version}")
    """
    if isinstance(type, str):
        type = FieldType.from_str(type)
    if isinstance(volatility, str):
        volatility = Volatility(volatility)
    return FieldSpec(
        name=name,
        type=type,
        required=required,
        volatility=volatility,
        fact=fact,
        enum_values=enum_values,
        description=description,
    )


def _check_unique(names: list[str], what: str, owner: str) -> None:
    if len(names) != len(set(names)):
        raise ValueError(f"Duplicate {what} in '{owner}'")


@dataclass(frozen=True)
class CollectionSpec:
    """One ``_embedded`` collection and the shape of its items.

    Attributes:
        name: Collection key under ``_embedded``
        fields: Fields each item may carry
        relations: Relation names each item may carry in its ``_links``
    """

    name: str
    fields: tuple[FieldSpec, ...] = dataclass_field(default_factory=tuple)
    relations: tuple[str, ...] = ("self",)

    def __post_init__(self) -> None:
        _check_unique([f.name for f in self.fields], "field name", self.name)
        _check_unique(list(self.relations), "relation", self.name)

    def get_field(self, name: str) -> FieldSpec | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
            "relations": list(self.relations),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CollectionSpec:
        return cls(
            name=data["name"],
            fields=tuple(FieldSpec.from_dict(f) for f in data.get("fields", [])),
            relations=tuple(data.get("relations", ["self"])),
        )


@dataclass(frozen=True)
class KindSchema:
    """Allow-list of one resource kind.

    Attributes:
        kind: The resource kind
        fields: Root-level domain fields, in serialization order
        relations: Root ``_links`` relation names, in serialization order
        collections: ``_embedded`` collections, in serialization order
        description: Human-readable description

    Invariants:
        - ``self`` is always a permitted relation
        - Field, relation and collection names are unique
    """

    kind: ResourceKind
    fields: tuple[FieldSpec, ...] = dataclass_field(default_factory=tuple)
    relations: tuple[str, ...] = ("self",)
    collections: tuple[CollectionSpec, ...] = dataclass_field(default_factory=tuple)
    description: str = ""

    def __post_init__(self) -> None:
        """Validate kind schema."""
        if self.kind.is_external:
            raise ValueError(f"External kind '{self.kind.value}' cannot have a schema")
        if "self" not in self.relations:
            raise ValueError(f"Kind '{self.kind.value}' must permit the 'self' relation")
        _check_unique([f.name for f in self.fields], "field name", self.kind.value)
        _check_unique(list(self.relations), "relation", self.kind.value)
        _check_unique([c.name for c in self.collections], "collection", self.kind.value)

    @property
    def mutability(self) -> MutabilityClass:
        return self.kind.mutability

    def get_field(self, name: str) -> FieldSpec | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_collection(self, name: str) -> CollectionSpec | None:
        for c in self.collections:
            if c.name == name:
                return c
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation for serialization."""
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "mutability": self.mutability.value,
            "fields": [f.to_dict() for f in self.fields],
            "relations": list(self.relations),
            "collections": [c.to_dict() for c in self.collections],
        }
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KindSchema:
        return cls(
            kind=ResourceKind.from_str(data["kind"]),
            fields=tuple(FieldSpec.from_dict(f) for f in data.get("fields", [])),
            relations=tuple(data.get("relations", ["self"])),
            collections=tuple(CollectionSpec.from_dict(c) for c in data.get("collections", [])),
            description=data.get("description", ""),
        )
