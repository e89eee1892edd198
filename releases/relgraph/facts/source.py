"""
Fact sources: the adapter between the release database and the builder.

A FactSource produces one complete FactSet per build. Reading the feed is
the only I/O-bound step of a build, so sources are async; the builder never
starts on a partially read feed.

Invariants:
    - load() is all-or-nothing: either every record parses or
      FactSourceError is raised and nothing is returned
    - Sources hold no graph logic
    - Export files are read as a whole before any record is interpreted

How to change safely:
    - New export formats are new FactSource implementations
    - Keep the record field names in sync with ReleaseFact.from_dict

Export format (JSON or YAML):
    {
        "releases": [{"majorVersion": "9.0", "patchVersion": "9.0.10", ...}],
        "cves": [{"id": "CVE-2025-55247", "title": "...", "cvssScore": 7.5}]
    }
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

import yaml

from ..errors import FactSourceError
from .types import CveRecord, FactSet, ReleaseFact

logger = logging.getLogger(__name__)


@runtime_checkable
class FactSource(Protocol):
    """Protocol every fact source implements."""

    async def load(self) -> FactSet:
        """Read the complete fact set.

        Raises:
            FactSourceError: If any part of the feed cannot be read
        """
        ...


class InMemoryFactSource:
    """Fact source backed by in-process records.

    Useful for tests and for callers that already hold the facts.

    Example:
        >>> source = InMemoryFactSource([fact_a, fact_b])
        >>> facts = await source.load()
    """

    def __init__(
        self,
        facts: Iterable[ReleaseFact] = (),
        cves: Iterable[CveRecord] = (),
    ) -> None:
        self._facts = list(facts)
        self._cves = list(cves)

    async def load(self) -> FactSet:
        try:
            return FactSet(
                facts=tuple(self._facts),
                cves={c.cve_id: c for c in self._cves},
            )
        except ValueError as e:
            raise FactSourceError(str(e), source="memory") from e


class FileFactSource:
    """Fact source reading a JSON or YAML export.

    The format is chosen by suffix: ``.yaml``/``.yml`` are parsed with
    PyYAML's safe loader, everything else as JSON. CVE records may live in
    the same file under ``cves`` or in a separate file.

    Attributes:
        path: Release export file
        cve_path: Optional separate CVE export file

    Example:
        >>> source = FileFactSource("facts/releases.json")
        >>> facts = await source.load()
    """

    def __init__(self, path: str | Path, cve_path: str | Path | None = None) -> None:
        self.path = Path(path)
        self.cve_path = Path(cve_path) if cve_path else None

    async def load(self) -> FactSet:
        """Read and parse the export off the event loop."""
        return await asyncio.to_thread(self._load_sync)

    def _load_sync(self) -> FactSet:
        data = self._read(self.path)
        release_records = data.get("releases")
        if not isinstance(release_records, list):
            raise FactSourceError("Export has no 'releases' list", source=str(self.path))

        cve_records = list(data.get("cves") or [])
        if self.cve_path is not None:
            cve_data = self._read(self.cve_path)
            cve_records.extend(cve_data.get("cves") or [])

        facts = self._parse_all(release_records, ReleaseFact.from_dict, "release")
        cves = self._parse_all(cve_records, CveRecord.from_dict, "cve")

        try:
            fact_set = FactSet(facts=tuple(facts), cves={c.cve_id: c for c in cves})
        except ValueError as e:
            raise FactSourceError(str(e), source=str(self.path)) from e

        logger.info(
            "Loaded release facts",
            extra={
                "source": str(self.path),
                "facts": len(fact_set),
                "cves": len(fact_set.cves),
            },
        )
        return fact_set

    def _parse_all(self, records: List[Any], parse: Any, label: str) -> List[Any]:
        parsed = []
        for i, record in enumerate(records):
            if not isinstance(record, dict):
                raise FactSourceError(
                    f"{label} record #{i} is not an object", source=str(self.path)
                )
            try:
                parsed.append(parse(record))
            except (ValueError, TypeError) as e:
                raise FactSourceError(
                    f"Invalid {label} record #{i}: {e}", source=str(self.path)
                ) from e
        return parsed

    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise FactSourceError(f"Cannot read {path}: {e}", source=str(path)) from e

        try:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise FactSourceError(f"Cannot parse {path}: {e}", source=str(path)) from e

        if not isinstance(data, dict):
            raise FactSourceError(f"{path} does not contain an object", source=str(path))
        return data


def create_fact_source(path: Optional[str], cve_path: Optional[str] = None) -> FactSource:
    """Create the fact source named by configuration.

    Raises:
        FactSourceError: If no path is configured
    """
    if not path:
        raise FactSourceError("No fact source configured (set RELGRAPH_FACTS_PATH)")
    return FileFactSource(path, cve_path)
