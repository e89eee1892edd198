"""
Error types for the release graph build pipeline.

This module defines every exception raised while turning release facts
into a published graph:
- GraphError: Base exception
- FactSourceError: The input feed could not be read
- SchemaViolation: A resource does not match its kind's allow-list
- PartialFact: Expected upstream data is missing (warning, never raised)
- FrozenResourceMutationDetected: Inputs of an immutable resource changed
- ConsistencyViolation: The cache-safety invariant is violated
- PublishError: The staged graph could not be swapped in

Invariants:
    - All errors inherit from GraphError
    - Errors carry a stable code plus structured details for the operator
    - SchemaViolation, ConsistencyViolation and FrozenResourceMutationDetected
      are publish gates; PartialFact only ever ends up in a build report
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence


class GraphError(Exception):
    """Base exception for all release graph errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "GRAPH_ERROR"
        self.details = details or {}


class FactSourceError(GraphError):
    """The release fact feed could not be loaded.

    Raised when:
    - The export file is missing or unreadable
    - A record is malformed or lacks a required field
    - Two different facts claim the same patch version
    """

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(message, code="FACT_SOURCE_ERROR", details={"source": source})
        self.source = source


class SchemaViolation(GraphError):
    """A resource does not conform to its kind's schema.

    Attributes:
        kind: Resource kind being constructed
        uri: URI of the offending resource (if known)
        errors: Every problem found, in field order
    """

    def __init__(
        self,
        kind: str,
        errors: Sequence[str],
        uri: Optional[str] = None,
    ) -> None:
        errors = list(errors)
        where = f" at {uri}" if uri else ""
        msg = f"Resource of kind '{kind}'{where} violates its schema: " + "; ".join(errors)
        super().__init__(
            msg,
            code="SCHEMA_VIOLATION",
            details={"kind": kind, "uri": uri, "errors": errors},
        )
        self.kind = kind
        self.uri = uri
        self.errors = errors


class PartialFact(GraphError):
    """Expected upstream data is missing.

    The resource is still built, with the affected optional fields omitted.
    Instances are collected in the build result and logged; they never
    block publish.
    """

    def __init__(self, uri: str, missing: str, reason: str) -> None:
        super().__init__(
            f"{uri}: {missing} omitted ({reason})",
            code="PARTIAL_FACT",
            details={"uri": uri, "missing": missing, "reason": reason},
        )
        self.uri = uri
        self.missing = missing
        self.reason = reason


class FrozenResourceMutationDetected(GraphError):
    """The source facts of an already-published frozen resource changed.

    Attributes:
        uri: The frozen resource whose inputs diverged
        subtree: Major version subtree whose publish is blocked
        changes: Human-readable list of differences
    """

    def __init__(
        self,
        uri: str,
        subtree: str,
        changes: Optional[List[str]] = None,
    ) -> None:
        changes = changes or []
        msg = f"Frozen resource {uri} would change (subtree {subtree})"
        if changes:
            msg += ": " + "; ".join(changes)
        super().__init__(
            msg,
            code="FROZEN_RESOURCE_MUTATION",
            details={"uri": uri, "subtree": subtree, "changes": changes},
        )
        self.uri = uri
        self.subtree = subtree
        self.changes = changes


class ConsistencyViolation(GraphError):
    """The graph would expose evolving data in more than one cached place.

    Attributes:
        conflicts: The conflicts reported by the validator
    """

    def __init__(self, conflicts: Sequence[Any]) -> None:
        conflicts = list(conflicts)
        lines = [str(c) for c in conflicts]
        super().__init__(
            f"Consistency check failed with {len(conflicts)} conflict(s):\n" + "\n".join(lines),
            code="CONSISTENCY_VIOLATION",
            details={"conflicts": lines},
        )
        self.conflicts = conflicts


class PublishError(GraphError):
    """The staged graph could not be published.

    The previously published graph is left in place.
    """

    def __init__(self, message: str, build_id: Optional[str] = None) -> None:
        super().__init__(message, code="PUBLISH_ERROR", details={"build_id": build_id})
        self.build_id = build_id
