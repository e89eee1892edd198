"""
relgraph - Hypermedia release-notes graph builder.

This package turns release facts (patch versions, dates, CVEs, SDK
bandings) into a tree of HAL+JSON documents that CDN caches can serve with
independent, per-resource lifetimes:
- Two axes over the same frozen data: by version and by time
- Resources partitioned into cold, warm and frozen mutability classes
- Wormhole links that shortcut to distant frozen or cold resources
- A consistency gate that rejects evolving data inlined in two places

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────┐
    │ FactSource  │────▶│GraphBuilder │────▶│LinkResolver │
    │ (JSON/YAML) │     │ (fan-out)   │     │ (wormholes) │
    └─────────────┘     └──────┬──────┘     └─────────────┘
                               │
                               ▼
                        ┌─────────────┐     ┌─────────────┐
                        │ Consistency │────▶│  Publisher  │
                        │  Validator  │     │(atomic swap)│
                        └─────────────┘     └──────┬──────┘
                                                   │
                                                   ▼
                                            ┌─────────────┐
                                            │ builds/<id> │◀── relgraph_sdk
                                            │  current ─▶ │    QueryEngine
                                            └─────────────┘

Invariants:
    - Facts are the source of truth; documents are derived and rebuildable
    - Frozen documents never change bytes once published (a ``next`` link
      may be appended when a successor first appears)
    - A failed build never touches the live graph

How to change safely:
    - Never renumber the URI hierarchy without a schema version bump
    - Adding a kind means adding its schema, URI builder and builder pass

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
