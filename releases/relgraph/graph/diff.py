"""
Differences between two versions of the graph.

This module classifies what changed between a published graph and a newly
built one, by resource and by mutability class:
- Cold and warm resources may change freely (within their cadence)
- A frozen resource may only gain a ``next`` link; anything else is a
  violation of its immutability

Invariants:
    - Diffs are deterministic (sorted by URI, then by path)
    - Fingerprints are SHA-256 over canonical JSON (sorted keys, compact)

Example:
    >>> changes = diff_graphs(old_documents, new_documents)
    >>> violations = [c for c in changes if c.is_violation]
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, List, Mapping, Optional

from ..schema.types import MutabilityClass, ResourceKind

logger = logging.getLogger(__name__)


def fingerprint(payload: Any) -> str:
    """SHA-256 fingerprint of a JSON-serializable payload."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ChangeKind(Enum):
    """Kinds of resource changes."""
    RESOURCE_ADDED = auto()
    RESOURCE_REMOVED = auto()
    FIELD_ADDED = auto()
    FIELD_REMOVED = auto()
    FIELD_CHANGED = auto()
    LINK_ADDED = auto()
    LINK_REMOVED = auto()
    LINK_CHANGED = auto()
    EMBEDDED_CHANGED = auto()


@dataclass
class GraphChange:
    """A single difference between two versions of one resource.

    Attributes:
        kind: The type of change
        uri: Resource URI
        mutability: Mutability class of the resource
        path: Field name, relation or collection that changed
        old_value: Previous value (if applicable)
        new_value: New value (if applicable)
    """
    kind: ChangeKind
    uri: str
    mutability: MutabilityClass
    path: str = ""
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None

    @property
    def is_violation(self) -> bool:
        """Whether the change breaks the immutability of a frozen resource."""
        if self.mutability is not MutabilityClass.FROZEN:
            return False
        if self.kind == ChangeKind.RESOURCE_ADDED:
            return False
        return not (self.kind == ChangeKind.LINK_ADDED and self.path == "next")

    def __str__(self) -> str:
        status = "VIOLATION" if self.is_violation else self.mutability.value
        where = f"{self.uri}:{self.path}" if self.path else self.uri
        detail = ""
        if self.old_value is not None or self.new_value is not None:
            detail = f" {self.old_value!r} -> {self.new_value!r}"
        return f"[{status}] {self.kind.name}: {where}{detail}"


def _kind_of(document: Mapping[str, Any]) -> MutabilityClass:
    try:
        return ResourceKind.from_str(str(document.get("kind"))).mutability
    except ValueError:
        return MutabilityClass.WARM


def _diff_mapping(
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    uri: str,
    mutability: MutabilityClass,
    added: ChangeKind,
    removed: ChangeKind,
    changed: ChangeKind,
) -> List[GraphChange]:
    changes: List[GraphChange] = []
    for key in sorted(set(old) | set(new)):
        if key not in old:
            changes.append(GraphChange(added, uri, mutability, key, None, new[key]))
        elif key not in new:
            changes.append(GraphChange(removed, uri, mutability, key, old[key], None))
        elif old[key] != new[key]:
            changes.append(GraphChange(changed, uri, mutability, key, old[key], new[key]))
    return changes


def diff_documents(
    uri: str,
    old: Mapping[str, Any],
    new: Mapping[str, Any],
) -> List[GraphChange]:
    """Compare two versions of one document."""
    mutability = _kind_of(new)
    reserved = ("$schema", "kind", "_links", "_embedded")

    changes = _diff_mapping(
        {k: v for k, v in old.items() if k not in reserved},
        {k: v for k, v in new.items() if k not in reserved},
        uri, mutability,
        ChangeKind.FIELD_ADDED, ChangeKind.FIELD_REMOVED, ChangeKind.FIELD_CHANGED,
    )
    changes.extend(_diff_mapping(
        old.get("_links") or {}, new.get("_links") or {},
        uri, mutability,
        ChangeKind.LINK_ADDED, ChangeKind.LINK_REMOVED, ChangeKind.LINK_CHANGED,
    ))
    old_embedded = old.get("_embedded") or {}
    new_embedded = new.get("_embedded") or {}
    for name in sorted(set(old_embedded) | set(new_embedded)):
        if old_embedded.get(name) != new_embedded.get(name):
            changes.append(GraphChange(ChangeKind.EMBEDDED_CHANGED, uri, mutability, name))
    if old.get("kind") != new.get("kind"):
        changes.append(
            GraphChange(ChangeKind.FIELD_CHANGED, uri, mutability, "kind", old.get("kind"), new.get("kind"))
        )
    return changes


def diff_graphs(
    old: Mapping[str, Mapping[str, Any]],
    new: Mapping[str, Mapping[str, Any]],
) -> List[GraphChange]:
    """Compare two graphs given as URI -> document maps.

    Returns:
        Every change, sorted by URI
    """
    changes: List[GraphChange] = []
    for uri in sorted(set(old) | set(new)):
        if uri not in old:
            changes.append(GraphChange(ChangeKind.RESOURCE_ADDED, uri, _kind_of(new[uri])))
        elif uri not in new:
            changes.append(GraphChange(ChangeKind.RESOURCE_REMOVED, uri, _kind_of(old[uri])))
        elif old[uri] != new[uri]:
            changes.extend(diff_documents(uri, old[uri], new[uri]))

    violations = sum(1 for c in changes if c.is_violation)
    logger.debug(
        "Graph diff computed",
        extra={"changes": len(changes), "violations": violations},
    )
    return changes


def diff_inputs(old: Mapping[str, Any], new: Mapping[str, Any]) -> List[str]:
    """Human-readable differences between two canonical input records."""
    lines: List[str] = []
    for key in sorted(set(old) | set(new)):
        if old.get(key) != new.get(key):
            lines.append(f"{key}: {old.get(key)!r} -> {new.get(key)!r}")
    return lines


def summarize(changes: List[GraphChange]) -> Dict[str, int]:
    """Count changes per mutability class, plus violations."""
    summary = {m.value: 0 for m in MutabilityClass}
    summary["violations"] = 0
    for change in changes:
        summary[change.mutability.value] += 1
        if change.is_violation:
            summary["violations"] += 1
    return summary
