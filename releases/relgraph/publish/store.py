"""
Read access to published builds.

Layout of an output directory:
    <output>/builds/<buildId>/index.json
    <output>/builds/<buildId>/9.0/9.0.10/index.json
    <output>/builds/<buildId>/timeline/2025/10/index.json
    <output>/builds/<buildId>/manifest.json
    <output>/current -> builds/<buildId>

The manifest is written last, so a build directory without one is an
aborted build and is never read.

Manifest contains:
    - buildId, createdAt: Identity of the build
    - graphFingerprint: Fingerprint over every document checksum
    - schemaFingerprint: Fingerprint of the schema registry used
    - resources: URI -> kind, mutability, checksum (for cache lifetimes)
    - frozen: URI -> inputs, inputsFingerprint, prev, next
    - facts, cves: The facts the graph was built from
    - held, warnings: What the build held back or reported

How to change safely:
    - Add new manifest fields, don't remove existing ones
    - Bump MANIFEST_VERSION when a field changes meaning
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import PublishError
from ..facts.types import CveRecord, FactSet, ReleaseFact
from ..graph.builder import FrozenRecord

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = 1
BUILDS_DIR = "builds"
CURRENT_LINK = "current"


def uri_to_path(root: Path, uri: str) -> Path:
    """Filesystem location of a graph URI below a build directory."""
    return root / uri.lstrip("/")


def file_checksum(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class ResourceEntry:
    """Manifest entry of one published document."""

    uri: str
    kind: str
    mutability: str
    checksum: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "mutability": self.mutability, "checksum": self.checksum}

    @classmethod
    def from_dict(cls, uri: str, data: Dict[str, Any]) -> ResourceEntry:
        return cls(uri=uri, kind=data["kind"], mutability=data["mutability"], checksum=data["checksum"])


@dataclass
class Manifest:
    """Description of one published build."""

    build_id: str
    created_at: str
    graph_fingerprint: str
    schema_fingerprint: Optional[str]
    resources: Dict[str, ResourceEntry] = field(default_factory=dict)
    frozen: Dict[str, FrozenRecord] = field(default_factory=dict)
    facts: List[Dict[str, Any]] = field(default_factory=list)
    cves: List[Dict[str, Any]] = field(default_factory=list)
    held: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifestVersion": MANIFEST_VERSION,
            "buildId": self.build_id,
            "createdAt": self.created_at,
            "graphFingerprint": self.graph_fingerprint,
            "schemaFingerprint": self.schema_fingerprint,
            "resources": {uri: e.to_dict() for uri, e in sorted(self.resources.items())},
            "frozen": {uri: r.to_dict() for uri, r in sorted(self.frozen.items())},
            "facts": self.facts,
            "cves": self.cves,
            "held": self.held,
            "warnings": self.warnings,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Manifest:
        """Parse a manifest.

        Raises:
            ValueError: If a required field is missing or the version is unknown
        """
        version = data.get("manifestVersion")
        if version != MANIFEST_VERSION:
            raise ValueError(f"Unsupported manifest version {version!r}")
        try:
            return cls(
                build_id=data["buildId"],
                created_at=data["createdAt"],
                graph_fingerprint=data["graphFingerprint"],
                schema_fingerprint=data.get("schemaFingerprint"),
                resources={
                    uri: ResourceEntry.from_dict(uri, e)
                    for uri, e in data.get("resources", {}).items()
                },
                frozen={
                    uri: FrozenRecord.from_dict(uri, r)
                    for uri, r in data.get("frozen", {}).items()
                },
                facts=list(data.get("facts", [])),
                cves=list(data.get("cves", [])),
                held=list(data.get("held", [])),
                warnings=list(data.get("warnings", [])),
            )
        except KeyError as e:
            raise ValueError(f"Manifest is missing {e}") from None


class PublishedGraph:
    """Read-only view of one published build.

    Attributes:
        build_dir: Directory of the build
        manifest: The build's manifest

    Example:
        >>> previous = PublishedGraph.open("./site")
        >>> previous.document("/9.0/index.json")["latestPatch"]
        '9.0.11'
    """

    def __init__(self, build_dir: Path, manifest: Manifest) -> None:
        self.build_dir = build_dir
        self.manifest = manifest
        self._facts: Optional[FactSet] = None

    @classmethod
    def open(cls, output_dir: str | Path) -> Optional[PublishedGraph]:
        """Open the live build of an output directory.

        Returns:
            The published graph, or None if nothing was published yet

        Raises:
            PublishError: If the live build is unreadable
        """
        current = Path(output_dir) / CURRENT_LINK
        if not current.exists():
            return None
        return cls.open_build(current.resolve())

    @classmethod
    def open_build(cls, build_dir: str | Path) -> PublishedGraph:
        """Open one build directory.

        Raises:
            PublishError: If the manifest is missing or invalid
        """
        build_dir = Path(build_dir)
        path = build_dir / MANIFEST_NAME
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            manifest = Manifest.from_dict(data)
        except (OSError, ValueError) as e:
            raise PublishError(f"Cannot read manifest {path}: {e}") from e
        return cls(build_dir, manifest)

    @property
    def build_id(self) -> str:
        return self.manifest.build_id

    @property
    def fingerprint(self) -> str:
        return self.manifest.graph_fingerprint

    @property
    def frozen_records(self) -> Dict[str, FrozenRecord]:
        return self.manifest.frozen

    @property
    def facts(self) -> Optional[FactSet]:
        """Facts the build was made from (parsed on first access)."""
        if self._facts is None and self.manifest.facts:
            self._facts = FactSet(
                facts=tuple(ReleaseFact.from_dict(f) for f in self.manifest.facts),
                cves={c["id"]: CveRecord.from_dict(c) for c in self.manifest.cves},
            )
        return self._facts

    def uris(self) -> List[str]:
        return sorted(self.manifest.resources)

    def read_bytes(self, uri: str) -> Optional[bytes]:
        if uri not in self.manifest.resources:
            return None
        try:
            return uri_to_path(self.build_dir, uri).read_bytes()
        except FileNotFoundError:
            return None

    def document(self, uri: str) -> Optional[Dict[str, Any]]:
        data = self.read_bytes(uri)
        if data is None:
            return None
        return json.loads(data.decode("utf-8"))

    def documents(self) -> Dict[str, Dict[str, Any]]:
        documents = {}
        for uri in self.uris():
            doc = self.document(uri)
            if doc is not None:
                documents[uri] = doc
        return documents

    def verify(self) -> List[str]:
        """Check every document against its manifest checksum.

        Returns:
            List of problems (empty if the build is intact)
        """
        problems = []
        for uri, entry in sorted(self.manifest.resources.items()):
            data = self.read_bytes(uri)
            if data is None:
                problems.append(f"{uri}: missing")
            elif file_checksum(data) != entry.checksum:
                problems.append(f"{uri}: checksum mismatch")
        return problems
