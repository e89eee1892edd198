"""
Publishing of built graphs.

Invariants:
    - A build becomes live only through an atomic swap of ``current``
    - A failed publish leaves the live graph untouched
"""

from .publisher import PublishReceipt, Publisher, make_build_id
from .store import Manifest, PublishedGraph, ResourceEntry

__all__ = [
    "Publisher",
    "PublishReceipt",
    "make_build_id",
    "PublishedGraph",
    "Manifest",
    "ResourceEntry",
]
