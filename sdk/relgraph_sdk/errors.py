"""
Error types for the release graph SDK.

This module defines all exception types raised while querying a published
graph:
- RelGraphError: Base exception
- RelationNotFound: A relation is absent from the current document
- KeyNotFound: An embedded item with the requested key is absent
- TargetUnavailable: A link target could not be fetched (retryable)
- DocumentError: A fetched document is not a graph resource

Invariants:
    - All errors inherit from RelGraphError
    - ``retryable`` tells callers whether trying again can help
    - The query engine never substitutes stale or placeholder data for
      a failed fetch
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class RelGraphError(Exception):
    """Base exception for all SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "RELGRAPH_ERROR"
        self.details = details or {}


class RelationNotFound(RelGraphError):
    """A relation is not present on the document being traversed.

    Not retryable: the query names a relation the resource does not carry.

    Attributes:
        relation: Requested relation
        href: Document the relation was looked up on
        available: Relations the document does carry
    """

    def __init__(
        self,
        relation: str,
        href: Optional[str] = None,
        available: Optional[List[str]] = None,
        message: Optional[str] = None,
    ) -> None:
        available = available or []
        msg = message or f"Relation '{relation}' not found on {href or 'document'}"
        if available and not message:
            msg += f" (available: {', '.join(available)})"
        super().__init__(
            msg,
            code="RELATION_NOT_FOUND",
            details={"relation": relation, "href": href, "available": available},
        )
        self.relation = relation
        self.href = href
        self.available = available


class KeyNotFound(RelationNotFound):
    """No embedded item matches a key (version, year or month)."""

    def __init__(
        self,
        collection: str,
        key: str,
        href: Optional[str] = None,
        available: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            collection,
            href=href,
            available=available,
            message=f"No '{collection}' entry '{key}' on {href or 'document'}",
        )
        self.code = "KEY_NOT_FOUND"
        self.details["key"] = key
        self.collection = collection
        self.key = key


class TargetUnavailable(RelGraphError):
    """A link target could not be fetched.

    Retryable: CDN edges may not have received a freshly published
    resource yet.

    Attributes:
        href: Target that failed
        status_code: HTTP status, if the failure was an HTTP response
        attempts: Fetch attempts made before giving up
    """

    retryable = True

    def __init__(
        self,
        href: str,
        reason: str,
        status_code: Optional[int] = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(
            f"Target {href} unavailable after {attempts} attempt(s): {reason}",
            code="TARGET_UNAVAILABLE",
            details={"href": href, "status_code": status_code, "attempts": attempts},
        )
        self.href = href
        self.reason = reason
        self.status_code = status_code
        self.attempts = attempts


class DocumentError(RelGraphError):
    """A fetched document is malformed or not a graph resource."""

    def __init__(self, href: str, reason: str) -> None:
        super().__init__(
            f"Invalid document at {href}: {reason}",
            code="DOCUMENT_ERROR",
            details={"href": href},
        )
        self.href = href
        self.reason = reason
