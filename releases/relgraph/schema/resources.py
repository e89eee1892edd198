"""
Resource model: the closed set of graph node kinds.

A Resource is one published JSON document. Its kind is a closed sum type
(RootIndex | MajorVersionIndex | PatchIndex | TimelineIndex | YearIndex |
MonthIndex); each variant's fields, relations and embedded collections are
checked against the kind schema when the object is constructed, so an
invalid resource never exists in memory.

Invariants:
    - Resources are immutable; with_link() returns a new resource
    - The ``self`` link is required and equals the resource URI
    - document() is canonical: ``$schema``, ``kind``, fields in schema
      order, ``_links`` in relation order, ``_embedded`` in collection order
    - to_json() of from_document(doc) reproduces the bytes doc was read from

How to change safely:
    - Shape changes belong in kinds.py; this module only enforces them
    - Never emit null; absent optional fields are omitted

Example:
    >>> year = YearIndex(
    ...     "/timeline/2025/index.json",
    ...     fields={"year": "2025"},
    ...     links=[Link("self", "/timeline/2025/index.json")],
    ... )
    >>> year.document()["kind"]
    'year-index'
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type

from ..errors import SchemaViolation
from .registry import SchemaRegistry, get_registry
from .types import HAL_MEDIA_TYPE, CollectionSpec, KindSchema, MutabilityClass, ResourceKind
from .validate import validate_resource

RESERVED_KEYS = ("$schema", "kind", "_links", "_embedded")


@dataclass(frozen=True)
class Link:
    """A named hypermedia relation to another resource.

    Attributes:
        relation: Relation name (``self``, ``next``, ``release-month`` ...)
        href: Root-relative path for graph resources, absolute URL otherwise
        title: Human-readable label
        media_type: Media type of the target (serialized as ``type``)
        templated: Whether href is a URI template
    """

    relation: str
    href: str
    title: Optional[str] = None
    media_type: Optional[str] = HAL_MEDIA_TYPE
    templated: bool = False

    def __post_init__(self) -> None:
        if not self.relation:
            raise ValueError("Link relation cannot be empty")
        if not self.href:
            raise ValueError(f"Link '{self.relation}' has an empty href")

    @property
    def is_internal(self) -> bool:
        return self.href.startswith("/")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"href": self.href}
        if self.title:
            result["title"] = self.title
        if self.media_type:
            result["type"] = self.media_type
        if self.templated:
            result["templated"] = True
        return result

    @classmethod
    def from_dict(cls, relation: str, data: Mapping[str, Any]) -> Link:
        if not isinstance(data, Mapping) or "href" not in data:
            raise ValueError(f"Link '{relation}' has no href")
        return cls(
            relation=relation,
            href=data["href"],
            title=data.get("title"),
            media_type=data.get("type"),
            templated=bool(data.get("templated", False)),
        )


def _links_to_dict(links: Sequence[Link], order: Sequence[str]) -> Dict[str, Any]:
    """Group links by relation; one link is an object, several an array."""
    grouped: Dict[str, List[Link]] = {}
    for link in links:
        grouped.setdefault(link.relation, []).append(link)

    result: Dict[str, Any] = {}
    for relation in order:
        group = grouped.get(relation)
        if not group:
            continue
        if len(group) == 1:
            result[relation] = group[0].to_dict()
        else:
            result[relation] = [l.to_dict() for l in group]
    return result


def _links_from_dict(data: Any) -> Tuple[Link, ...]:
    if data is None:
        return ()
    if not isinstance(data, Mapping):
        raise ValueError("'_links' must be an object")
    links: List[Link] = []
    for relation, value in data.items():
        if isinstance(value, list):
            links.extend(Link.from_dict(relation, v) for v in value)
        else:
            links.append(Link.from_dict(relation, value))
    return tuple(links)


@dataclass(frozen=True)
class EmbeddedItem:
    """One item of an ``_embedded`` collection."""

    fields: Mapping[str, Any]
    links: Tuple[Link, ...] = ()

    def link(self, relation: str) -> Optional[Link]:
        for l in self.links:
            if l.relation == relation:
                return l
        return None

    def to_dict(self, spec: CollectionSpec) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            f.name: self.fields[f.name] for f in spec.fields if f.name in self.fields
        }
        links = _links_to_dict(self.links, spec.relations)
        if links:
            result["_links"] = links
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EmbeddedItem:
        if not isinstance(data, Mapping):
            raise ValueError("Embedded items must be objects")
        fields = {k: v for k, v in data.items() if k != "_links"}
        return cls(fields=fields, links=_links_from_dict(data.get("_links")))


class Resource:
    """Base class of every materialized resource kind.

    Subclasses only bind ``kind``; all structure comes from the schema.

    Raises:
        SchemaViolation: On construction, if anything is outside the
            kind's allow-list, a required field is missing or a value has
            the wrong type
    """

    kind: ClassVar[ResourceKind]

    def __init__(
        self,
        uri: str,
        fields: Optional[Mapping[str, Any]] = None,
        links: Iterable[Link] = (),
        embedded: Optional[Mapping[str, Sequence[EmbeddedItem]]] = None,
        registry: Optional[SchemaRegistry] = None,
    ) -> None:
        if not hasattr(type(self), "kind"):
            raise TypeError("Resource is abstract; construct one of its kinds")

        schema = (registry or get_registry()).get(self.kind)
        if schema is None:
            raise SchemaViolation(self.kind.value, ["no schema registered"], uri=uri)

        fields = dict(fields or {})
        links = tuple(links)
        embedded = {name: tuple(items) for name, items in (embedded or {}).items()}

        errors = validate_resource(schema, fields, [l.relation for l in links], embedded)
        self_links = [l for l in links if l.relation == "self"]
        if len(self_links) > 1:
            errors.append(f"{self.kind.value}._links: more than one 'self' link")
        elif self_links and self_links[0].href != uri:
            errors.append(
                f"{self.kind.value}._links: 'self' is '{self_links[0].href}', expected '{uri}'"
            )
        if errors:
            raise SchemaViolation(self.kind.value, errors, uri=uri)

        self._uri = uri
        self._schema = schema
        self._registry = registry
        self._fields = fields
        self._links = links
        self._embedded = embedded

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def schema(self) -> KindSchema:
        return self._schema

    @property
    def mutability(self) -> MutabilityClass:
        return self.kind.mutability

    @property
    def fields(self) -> Mapping[str, Any]:
        return MappingProxyType(self._fields)

    @property
    def links(self) -> Tuple[Link, ...]:
        return self._links

    @property
    def embedded(self) -> Mapping[str, Tuple[EmbeddedItem, ...]]:
        return MappingProxyType(self._embedded)

    def get(self, name: str, default: Any = None) -> Any:
        return self._fields.get(name, default)

    def link(self, relation: str) -> Optional[Link]:
        """First link with the given relation, if any."""
        for l in self._links:
            if l.relation == relation:
                return l
        return None

    def items(self, collection: str) -> Tuple[EmbeddedItem, ...]:
        return self._embedded.get(collection, ())

    def with_link(self, link: Link) -> Resource:
        """Return a copy with every link of ``link.relation`` replaced by ``link``."""
        links = [l for l in self._links if l.relation != link.relation]
        links.append(link)
        return type(self)(self._uri, self._fields, links, self._embedded, self._registry)

    def document(self) -> Dict[str, Any]:
        """Canonical HAL document."""
        doc: Dict[str, Any] = {"$schema": self.kind.schema_uri, "kind": self.kind.value}
        for spec in self._schema.fields:
            if spec.name in self._fields:
                doc[spec.name] = self._fields[spec.name]
        doc["_links"] = _links_to_dict(self._links, self._schema.relations)

        embedded: Dict[str, Any] = {}
        for collection in self._schema.collections:
            if collection.name in self._embedded:
                embedded[collection.name] = [
                    item.to_dict(collection) for item in self._embedded[collection.name]
                ]
        if embedded:
            doc["_embedded"] = embedded
        return doc

    def to_json(self) -> str:
        return json.dumps(self.document(), indent=2, ensure_ascii=False) + "\n"

    def checksum(self) -> str:
        return "sha256:" + hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()

    @staticmethod
    def from_document(
        doc: Mapping[str, Any],
        uri: Optional[str] = None,
        registry: Optional[SchemaRegistry] = None,
    ) -> Resource:
        """Parse a published document back into its resource kind.

        Args:
            doc: Parsed JSON document
            uri: Resource URI (defaults to the ``self`` href)
            registry: Schema registry (defaults to the global one)

        Raises:
            SchemaViolation: If the document does not match its kind
        """
        kind_str = doc.get("kind") if isinstance(doc, Mapping) else None
        try:
            kind = ResourceKind.from_str(str(kind_str))
            cls = RESOURCE_CLASSES[kind]
        except (ValueError, KeyError):
            raise SchemaViolation(str(kind_str), [f"unknown kind '{kind_str}'"], uri=uri) from None

        if doc.get("$schema") != kind.schema_uri:
            raise SchemaViolation(
                kind.value,
                [f"$schema is '{doc.get('$schema')}', expected '{kind.schema_uri}'"],
                uri=uri,
            )

        try:
            links = _links_from_dict(doc.get("_links"))
            raw_embedded = doc.get("_embedded") or {}
            if not isinstance(raw_embedded, Mapping):
                raise ValueError("'_embedded' must be an object")
            embedded = {
                name: [EmbeddedItem.from_dict(item) for item in items]
                for name, items in raw_embedded.items()
            }
        except (ValueError, TypeError) as e:
            raise SchemaViolation(kind.value, [str(e)], uri=uri) from e

        if uri is None:
            self_link = next((l for l in links if l.relation == "self"), None)
            if self_link is None:
                raise SchemaViolation(kind.value, ["relation 'self' is required"])
            uri = self_link.href

        fields = {k: v for k, v in doc.items() if k not in RESERVED_KEYS}
        return cls(uri, fields, links, embedded, registry)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return self.kind == other.kind and self._uri == other._uri and self.document() == other.document()

    def __hash__(self) -> int:
        return hash((self.kind, self._uri))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._uri!r})"


class RootIndex(Resource):
    """Entry point of the version axis (cold)."""

    kind = ResourceKind.ROOT


class MajorVersionIndex(Resource):
    """One major version and its patch currency (warm)."""

    kind = ResourceKind.MAJOR

    @property
    def version(self) -> str:
        return self._fields["version"]


class PatchIndex(Resource):
    """One shipped patch (frozen)."""

    kind = ResourceKind.PATCH

    @property
    def version(self) -> str:
        return self._fields["version"]


class TimelineIndex(Resource):
    """Entry point of the time axis (cold)."""

    kind = ResourceKind.TIMELINE


class YearIndex(Resource):
    """Months of one year with releases (warm)."""

    kind = ResourceKind.YEAR


class MonthIndex(Resource):
    """Every patch shipped in one month (frozen)."""

    kind = ResourceKind.MONTH


RESOURCE_CLASSES: Dict[ResourceKind, Type[Resource]] = {
    cls.kind: cls
    for cls in (RootIndex, MajorVersionIndex, PatchIndex, TimelineIndex, YearIndex, MonthIndex)
}
