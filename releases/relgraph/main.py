"""
relgraph - Main entry point.

This module runs one build of the release graph:
- Load the complete fact set (the only I/O-bound step, awaited in full)
- Open the live publication, if any, to reconcile frozen resources
- Build every resource (thread pool fan-out)
- Validate the consistency invariant (gate)
- Publish atomically, or stop after validation in dry-run mode

Usage:
    python -m releases.relgraph.main

Configuration is entirely via environment variables.
See config.py for all available settings. The ``relgraph`` tool exposes
the same pipeline with flag overrides.

Invariants:
    - No builder progress is made on a partially loaded fact set
    - A failed or cancelled run leaves the live graph untouched
    - All components share the same frozen schema registry

How to change safely:
    - New stages go between validation and publish, never after the swap
    - Keep exit codes stable: 0 success, 1 gate or input failure
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Optional

import json_log_formatter

from .config import GraphConfig
from .errors import GraphError
from .facts import FactSource, create_fact_source
from .graph.builder import BuildResult, GraphBuilder
from .graph.validator import ConsistencyValidator, ValidationReport
from .publish.publisher import PublishReceipt, Publisher
from .publish.store import PublishedGraph
from .schema import get_registry

logger = logging.getLogger(__name__)


def setup_logging(config: GraphConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Builder configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run.

    Attributes:
        build: The build result
        report: Consistency report
        receipt: Publish receipt (None in dry-run mode)
    """

    build: BuildResult
    report: ValidationReport
    receipt: Optional[PublishReceipt] = None


class GraphPipeline:
    """Build orchestrator: facts -> graph -> gate -> publish.

    Attributes:
        config: Builder configuration
        source: Fact source
        builder: Graph builder
        validator: Consistency validator
        publisher: Publisher

    Example:
        >>> pipeline = GraphPipeline(config, source=InMemoryFactSource(facts))
        >>> result = await pipeline.run()
        >>> result.receipt.build_id
    """

    def __init__(
        self,
        config: Optional[GraphConfig] = None,
        source: Optional[FactSource] = None,
        builder: Optional[GraphBuilder] = None,
        validator: Optional[ConsistencyValidator] = None,
        publisher: Optional[Publisher] = None,
    ) -> None:
        self.config = config or GraphConfig.from_env()
        self.source = source or create_fact_source(
            self.config.facts.path, self.config.facts.cve_path
        )
        self.builder = builder or GraphBuilder(self.config.build)
        self.validator = validator or ConsistencyValidator(self.builder.resolver.wormholes)
        self.publisher = publisher or Publisher(self.config.publish, self.validator)

    async def run(self) -> PipelineResult:
        """Run one build.

        Raises:
            FactSourceError: If the fact feed cannot be loaded
            SchemaViolation: If a resource does not match its schema
            FrozenResourceMutationDetected: If a frozen resource would change
            ConsistencyViolation: If the graph fails the consistency gate
            PublishError: If the graph could not be published
        """
        registry = get_registry()
        logger.info(
            "Starting graph build",
            extra={"schema_fingerprint": registry.fingerprint},
        )

        facts = await self.source.load()
        previous = await asyncio.to_thread(PublishedGraph.open, self.config.publish.output_dir)
        if previous is not None:
            logger.info(
                "Reconciling with live build",
                extra={"build_id": previous.build_id, "frozen": len(previous.frozen_records)},
            )

        build = await asyncio.to_thread(self.builder.build, facts, previous)

        if self.config.publish.dry_run:
            report = self.validator.check(build.index)
            logger.info("Dry run; skipping publish", extra={"resources": len(build.resources)})
            return PipelineResult(build=build, report=report)

        receipt = await asyncio.to_thread(self.publisher.publish, build)
        return PipelineResult(build=build, report=receipt.report, receipt=receipt)


def main() -> None:
    """Main entry point."""
    try:
        config = GraphConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    try:
        pipeline = GraphPipeline(config)
        asyncio.run(pipeline.run())
    except GraphError as e:
        logger.error(e.message, extra={"code": e.code})
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Build interrupted; live graph untouched")
        sys.exit(130)


if __name__ == "__main__":
    main()
