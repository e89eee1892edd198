"""
Schema registry for the release graph.

The SchemaRegistry is the single authority on what each resource kind may
contain. It provides:
- Registration of kind schemas
- Lookup by ResourceKind or by ``kind`` string
- Schema fingerprinting (recorded in every publish manifest)
- Freeze mechanism so schemas cannot change mid-build

Invariants:
    - Registry is mutable while being populated, frozen before any build
    - Each kind is registered at most once
    - Fingerprint changes whenever any schema changes

How to change safely:
    - Edit schemas in kinds.py, never by registering over a frozen registry
    - Compare fingerprints of the old and new registry before publishing;
      a changed fingerprint means every frozen document may change bytes
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from typing import Dict, Iterator, Optional, Union

from .kinds import DEFAULT_SCHEMAS
from .types import KindSchema, ResourceKind

logger = logging.getLogger(__name__)

_global_registry: Optional[SchemaRegistry] = None
_registry_lock = threading.Lock()


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when a kind is registered twice."""
    pass


class SchemaRegistry:
    """Registry of kind schemas.

    Thread-safety:
        - Registration is guarded by an internal lock
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Example:
        >>> registry = SchemaRegistry()
        >>> registry.register(ROOT_SCHEMA)
        >>> registry.freeze()
        'sha256:...'
    """

    def __init__(self) -> None:
        self._schemas: Dict[ResourceKind, KindSchema] = {}
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Schema fingerprint (available after freeze)."""
        return self._fingerprint

    def register(self, schema: KindSchema) -> None:
        """Register a kind schema.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the kind is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register kind '{schema.kind.value}': registry is frozen"
                )
            if schema.kind in self._schemas:
                raise DuplicateRegistrationError(
                    f"Kind '{schema.kind.value}' is already registered"
                )
            self._schemas[schema.kind] = schema
            logger.debug(f"Registered kind schema: {schema.kind.value}")

    def get(self, kind: Union[ResourceKind, str]) -> Optional[KindSchema]:
        """Get a schema by ResourceKind or ``kind`` string."""
        if isinstance(kind, str):
            try:
                kind = ResourceKind.from_str(kind)
            except ValueError:
                return None
        return self._schemas.get(kind)

    def schemas(self) -> Iterator[KindSchema]:
        yield from self._schemas.values()

    def freeze(self) -> str:
        """Freeze the registry and compute its fingerprint.

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")
            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Schema registry frozen with {len(self._schemas)} kinds, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict:
        """Schemas sorted by kind string for determinism."""
        return {
            "kinds": [
                self._schemas[k].to_dict()
                for k in sorted(self._schemas, key=lambda k: k.value)
            ],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict) -> SchemaRegistry:
        """Create an unfrozen registry from its dictionary representation."""
        registry = cls()
        for schema_data in data.get("kinds", []):
            registry.register(KindSchema.from_dict(schema_data))
        return registry

    def validate_all(self) -> list[str]:
        """Check that every materialized kind has a schema.

        Returns:
            List of problems (empty if complete)
        """
        return [
            f"No schema registered for kind '{kind.value}'"
            for kind in ResourceKind
            if not kind.is_external and kind not in self._schemas
        ]


def create_default_registry() -> SchemaRegistry:
    """Build and freeze a registry holding the six resource kinds."""
    registry = SchemaRegistry()
    for schema in DEFAULT_SCHEMAS:
        registry.register(schema)
    registry.freeze()
    return registry


def get_registry() -> SchemaRegistry:
    """Get the global (frozen, default) schema registry."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = create_default_registry()
        return _global_registry
