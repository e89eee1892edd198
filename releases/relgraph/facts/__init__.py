"""
Release fact input feed.

Invariants:
    - Facts are read-only inputs; nothing downstream mutates them
    - A build starts only after the complete FactSet is loaded
"""

from .source import FactSource, FileFactSource, InMemoryFactSource, create_fact_source
from .types import CveRecord, FactSet, ReleaseFact, ReleaseType, SupportPhase

__all__ = [
    "ReleaseFact",
    "CveRecord",
    "FactSet",
    "SupportPhase",
    "ReleaseType",
    "FactSource",
    "FileFactSource",
    "InMemoryFactSource",
    "create_fact_source",
]
