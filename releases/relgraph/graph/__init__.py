"""
Graph construction, linking and consistency checking.

Invariants:
    - Builds are deterministic and never write to disk
    - Wormholes only target frozen or cold kinds
    - The reverse index is complete and sealed before validation
"""

from .builder import BuildResult, FrozenRecord, GraphBuilder
from .diff import ChangeKind, GraphChange, diff_documents, diff_graphs, fingerprint
from .links import LinkResolver, WormholeRegistry, WormholeRule, create_default_wormholes
from .validator import (
    Conflict,
    ConflictKind,
    ConsistencyValidator,
    ReverseIndex,
    ValidationReport,
    index_graph,
)

__all__ = [
    # Builder
    "GraphBuilder",
    "BuildResult",
    "FrozenRecord",
    # Links
    "LinkResolver",
    "WormholeRegistry",
    "WormholeRule",
    "create_default_wormholes",
    # Validation
    "ConsistencyValidator",
    "ReverseIndex",
    "Conflict",
    "ConflictKind",
    "ValidationReport",
    "index_graph",
    # Diff
    "ChangeKind",
    "GraphChange",
    "diff_documents",
    "diff_graphs",
    "fingerprint",
]
