"""
Atomic publish-or-abort of a built graph.

A build is staged into its own directory, validated and written in full,
and only then made live by swapping the ``current`` symlink. Readers (a
web server, the CDN origin, the query engine) therefore see either the old
graph or the new one, never a mix.

Steps:
    1. Gate: the consistency validator must pass
    2. Skip if the graph fingerprint equals the live build's
    3. Write every document to builds/<buildId>/
    4. Write manifest.json last
    5. Swap ``current`` atomically (temp symlink + os.replace)
    6. Prune old builds beyond ``keep_builds``

Invariants:
    - Any failure before step 5 removes the staging directory and leaves
      ``current`` untouched
    - The live build is never pruned
    - buildId = UTC timestamp + first 12 hex chars of the graph fingerprint
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..config import PublishConfig
from ..errors import PublishError
from ..graph.builder import BuildResult
from ..graph.validator import ConsistencyValidator, ValidationReport
from ..schema.registry import get_registry
from .store import (
    BUILDS_DIR,
    CURRENT_LINK,
    MANIFEST_NAME,
    Manifest,
    PublishedGraph,
    ResourceEntry,
    file_checksum,
    uri_to_path,
)

logger = logging.getLogger(__name__)


@dataclass
class PublishReceipt:
    """Outcome of one publish call.

    Attributes:
        build_id: Live build after the call
        published: False when the graph was unchanged (no-op)
        build_dir: Directory of the live build
        resources: Documents in the live build
        fingerprint: Graph fingerprint
        pruned: Build ids removed by pruning
        report: Consistency report of the gate
    """

    build_id: str
    published: bool
    build_dir: Path
    resources: int
    fingerprint: str
    pruned: List[str] = field(default_factory=list)
    report: Optional[ValidationReport] = None


def make_build_id(fingerprint: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    digest = fingerprint.split(":", 1)[-1]
    return f"{now:%Y%m%dT%H%M%SZ}-{digest[:12]}"


class Publisher:
    """Writes a BuildResult into an output directory.

    Example:
        >>> publisher = Publisher(PublishConfig(output_dir="./site"))
        >>> receipt = publisher.publish(result)
        >>> receipt.build_id
        '20251014T120000Z-3f9a1c2b7d4e'
    """

    def __init__(
        self,
        config: PublishConfig,
        validator: Optional[ConsistencyValidator] = None,
    ) -> None:
        self.config = config
        self.output_dir = Path(config.output_dir)
        self.validator = validator or ConsistencyValidator()

    def publish(self, result: BuildResult) -> PublishReceipt:
        """Validate and atomically publish a build.

        Raises:
            ConsistencyViolation: If the graph fails the consistency gate
            PublishError: If the graph could not be written or swapped in
        """
        if result.index is None:
            raise PublishError("Build result has no reverse index; it was not built by GraphBuilder")
        report = self.validator.check(result.index)

        fingerprint = result.fingerprint()
        current = PublishedGraph.open(self.output_dir)
        if current is not None and current.fingerprint == fingerprint:
            logger.info(
                "Graph unchanged; nothing to publish",
                extra={"build_id": current.build_id, "fingerprint": fingerprint},
            )
            return PublishReceipt(
                build_id=current.build_id,
                published=False,
                build_dir=current.build_dir,
                resources=len(current.manifest.resources),
                fingerprint=fingerprint,
                report=report,
            )

        now = datetime.now(timezone.utc)
        build_id = make_build_id(fingerprint, now)
        builds = self.output_dir / BUILDS_DIR
        build_dir = builds / build_id

        try:
            builds.mkdir(parents=True, exist_ok=True)
            build_dir.mkdir()
        except OSError as e:
            raise PublishError(f"Cannot create build directory {build_dir}: {e}", build_id) from e

        try:
            manifest = self._stage(result, build_dir, build_id, fingerprint, now)
            self._swap(build_id)
        except BaseException as e:
            shutil.rmtree(build_dir, ignore_errors=True)
            logger.error(
                "Publish aborted; live graph untouched",
                extra={"build_id": build_id, "error": str(e)},
            )
            if isinstance(e, OSError):
                raise PublishError(f"Publishing {build_id} failed: {e}", build_id) from e
            raise

        pruned = self._prune(build_id)
        logger.info(
            "Graph published",
            extra={
                "build_id": build_id,
                "resources": len(manifest.resources),
                "reused": len(result.reused),
                "pruned": len(pruned),
            },
        )
        return PublishReceipt(
            build_id=build_id,
            published=True,
            build_dir=build_dir,
            resources=len(manifest.resources),
            fingerprint=fingerprint,
            pruned=pruned,
            report=report,
        )

    def _stage(
        self,
        result: BuildResult,
        build_dir: Path,
        build_id: str,
        fingerprint: str,
        now: datetime,
    ) -> Manifest:
        entries = {}
        for uri, resource in result.resources.items():
            data = resource.to_json().encode("utf-8")
            path = uri_to_path(build_dir, uri)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            entries[uri] = ResourceEntry(
                uri=uri,
                kind=resource.kind.value,
                mutability=resource.mutability.value,
                checksum=file_checksum(data),
            )

        facts = result.facts
        manifest = Manifest(
            build_id=build_id,
            created_at=now.isoformat(),
            graph_fingerprint=fingerprint,
            schema_fingerprint=get_registry().fingerprint,
            resources=entries,
            frozen=result.frozen_records,
            facts=[f.to_dict() for f in facts],
            cves=[facts.cves[k].to_dict() for k in sorted(facts.cves)],
            held=[m.details for m in result.held],
            warnings=[w.message for w in result.warnings],
        )
        (build_dir / MANIFEST_NAME).write_text(
            json.dumps(manifest.to_dict(), indent=2) + "\n", encoding="utf-8"
        )
        return manifest

    def _swap(self, build_id: str) -> None:
        """Point ``current`` at the new build in one rename."""
        link = self.output_dir / CURRENT_LINK
        tmp = self.output_dir / f".{CURRENT_LINK}-{build_id}"
        if tmp.is_symlink() or tmp.exists():
            tmp.unlink()
        os.symlink(Path(BUILDS_DIR) / build_id, tmp)
        os.replace(tmp, link)

    def _prune(self, live: str) -> List[str]:
        builds = self.output_dir / BUILDS_DIR
        ids = sorted(p.name for p in builds.iterdir() if p.is_dir())
        keep = set(ids[-self.config.keep_builds:]) | {live}
        pruned = []
        for build_id in ids:
            if build_id in keep:
                continue
            try:
                shutil.rmtree(builds / build_id)
                pruned.append(build_id)
            except OSError as e:
                logger.warning(
                    "Could not prune old build",
                    extra={"build_id": build_id, "error": str(e)},
                )
        return pruned
