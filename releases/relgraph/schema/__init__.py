"""
Resource model for the release graph.

This module provides the type system for graph documents, including:
- Kind schemas (fields, relations, embedded collections)
- Mutability classes and field volatility
- Schema registry with fingerprinting
- The closed set of Resource kinds, validated at construction

Invariants:
    - The set of kinds is closed
    - A resource outside its kind's allow-list cannot be constructed
    - The registry is frozen before any build starts

How to change safely:
    - Add optional fields and relations; never rename or remove one
    - Keep field order stable, it is the serialization order
"""

from .registry import SchemaRegistry, get_registry
from .resources import (
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
from .types import (
    CollectionSpec,
    FieldSpec,
    FieldType,
    KindSchema,
    MutabilityClass,
    ResourceKind,
    Volatility,
    field,
)

__all__ = [
    # Types
    "ResourceKind",
    "MutabilityClass",
    "Volatility",
    "FieldType",
    "FieldSpec",
    "CollectionSpec",
    "KindSchema",
    "field",
    # Registry
    "SchemaRegistry",
    "get_registry",
    # Resources
    "Link",
    "EmbeddedItem",
    "Resource",
    "RootIndex",
    "MajorVersionIndex",
    "PatchIndex",
    "TimelineIndex",
    "YearIndex",
    "MonthIndex",
]
