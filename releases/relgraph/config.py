"""
Configuration management for the release graph builder.

All configuration is done via environment variables; CLI flags override
individual values. This module provides typed configuration classes with
validation.

Invariants:
    - All settings have sensible defaults for local builds
    - Publishing into a shared output directory MUST set an explicit
      RELGRAPH_OUTPUT_DIR
    - The frozen-mutation policy defaults to aborting the build

How to change safely:
    - Add new settings with defaults that keep existing builds unchanged
    - Keep env var names stable; operators script against them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class MutationPolicy(Enum):
    """What to do when an already-published frozen resource would change."""

    RAISE = "raise"  # abort the whole build (strict opt-in)
    HOLD = "hold"  # default: keep the affected major subtree at its published facts


@dataclass(frozen=True)
class FactSourceConfig:
    """Input feed configuration.

    Attributes:
        path: Release export file (JSON or YAML)
        cve_path: Optional separate CVE export file
    """

    path: str | None = None
    cve_path: str | None = None

    @classmethod
    def from_env(cls) -> FactSourceConfig:
        """Load configuration from environment variables."""
        return cls(
            path=os.getenv("RELGRAPH_FACTS_PATH"),
            cve_path=os.getenv("RELGRAPH_CVE_PATH"),
        )


@dataclass(frozen=True)
class BuildConfig:
    """Graph builder configuration.

    Attributes:
        max_workers: Thread pool size for per-major and per-month subtrees
        on_frozen_mutation: ``raise`` or ``hold``
    """

    max_workers: int = 4
    on_frozen_mutation: str = MutationPolicy.HOLD.value

    @classmethod
    def from_env(cls) -> BuildConfig:
        """Load configuration from environment variables."""
        return cls(
            max_workers=int(os.getenv("RELGRAPH_MAX_WORKERS", "4")),
            on_frozen_mutation=os.getenv("RELGRAPH_ON_FROZEN_MUTATION", "hold").lower(),
        )


@dataclass(frozen=True)
class PublishConfig:
    """Publisher configuration.

    Attributes:
        output_dir: Directory holding ``builds/`` and the ``current`` link
        keep_builds: Published builds kept after a successful swap
        dry_run: Build and validate, but never touch the output directory
    """

    output_dir: str = "./site"
    keep_builds: int = 5
    dry_run: bool = False

    @classmethod
    def from_env(cls) -> PublishConfig:
        """Load configuration from environment variables."""
        return cls(
            output_dir=os.getenv("RELGRAPH_OUTPUT_DIR", "./site"),
            keep_builds=int(os.getenv("RELGRAPH_KEEP_BUILDS", "5")),
            dry_run=os.getenv("RELGRAPH_DRY_RUN", "false").lower() == "true",
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class GraphConfig:
    """Complete builder configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        facts: Input feed configuration
        build: Graph builder configuration
        publish: Publisher configuration
        observability: Logging configuration
    """

    facts: FactSourceConfig = field(default_factory=FactSourceConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> GraphConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            facts=FactSourceConfig.from_env(),
            build=BuildConfig.from_env(),
            publish=PublishConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        policies = [p.value for p in MutationPolicy]
        if self.build.on_frozen_mutation not in policies:
            raise ValueError(
                f"Invalid RELGRAPH_ON_FROZEN_MUTATION '{self.build.on_frozen_mutation}'. "
                f"Must be one of: {', '.join(policies)}"
            )
        if self.build.max_workers < 1:
            raise ValueError("RELGRAPH_MAX_WORKERS must be at least 1")
        if self.publish.keep_builds < 1:
            raise ValueError("RELGRAPH_KEEP_BUILDS must be at least 1")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.facts.path and not os.path.exists(self.facts.path):
            logger.warning(f"Fact export does not exist: {self.facts.path}")
        if not self.publish.dry_run and not os.path.exists(self.publish.output_dir):
            logger.warning(
                f"Output directory does not exist: {self.publish.output_dir}. "
                "It will be created on first publish."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Builder configuration loaded",
            extra={
                "facts_path": self.facts.path,
                "cve_path": self.facts.cve_path,
                "max_workers": self.build.max_workers,
                "on_frozen_mutation": self.build.on_frozen_mutation,
                "output_dir": self.publish.output_dir,
                "keep_builds": self.publish.keep_builds,
                "dry_run": self.publish.dry_run,
                "log_level": self.observability.log_level,
            },
        )
