"""
Operator tool for the release graph.

Commands:
- build: Build from the fact export and publish (or --dry-run)
- check: Build and validate without publishing; optionally verify the
  live build's checksums
- diff: Show differences between two published builds
- query: Traverse a published graph by relation path or key

Usage:
    relgraph build --facts releases.json --output ./site
    relgraph check --facts releases.json --output ./site --verify
    relgraph diff --old ./site/builds/A --new ./site/current
    relgraph query --base ./site/current --start /9.0/index.json latest latest-security
    relgraph query --base https://example.org/release-notes --patch 9.0.10

Invariants:
    - Gate failures (schema, consistency, frozen mutation) exit with 1
    - Flags override the matching RELGRAPH_* environment variables
    - Output of diff --format json is stable for CI parsing

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep exit codes stable
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
import sys
from dataclasses import replace
from typing import Any, List, Optional, Sequence

from sdk.relgraph_sdk import (
    ClientSettings,
    DirectoryFetcher,
    Document,
    HttpFetcher,
    QueryEngine,
    RelGraphError,
)

from ..config import GraphConfig
from ..errors import GraphError, PublishError
from ..graph.diff import GraphChange, diff_graphs, summarize
from ..main import GraphPipeline, PipelineResult, setup_logging
from ..publish.store import PublishedGraph

logger = logging.getLogger(__name__)


class GraphCLI:
    """CLI tool for building, checking and reading the graph.

    Example:
        >>> cli = GraphCLI()
        >>> result = cli.build(config)
        >>> changes = cli.diff("./site/builds/A", "./site/builds/B")
    """

    def build(self, config: GraphConfig) -> PipelineResult:
        """Run the full pipeline.

        Raises:
            GraphError: If any stage fails
        """
        return asyncio.run(GraphPipeline(config).run())

    def check(self, config: GraphConfig, verify: bool = False) -> tuple[bool, List[str]]:
        """Build and validate without publishing.

        Returns:
            Tuple of (passed, list_of_issues)
        """
        issues: List[str] = []
        config = replace(config, publish=replace(config.publish, dry_run=True))
        try:
            result = self.build(config)
        except GraphError as e:
            return False, [e.message]

        for warning in result.build.warnings:
            logger.info(warning.message)

        if verify:
            try:
                live = PublishedGraph.open(config.publish.output_dir)
            except PublishError as e:
                return False, [e.message]
            if live is None:
                issues.append(f"Nothing published in {config.publish.output_dir}")
            else:
                issues.extend(live.verify())
        return not issues, issues

    def diff(self, old_path: str, new_path: str) -> List[GraphChange]:
        """Differences between two published builds.

        Raises:
            PublishError: If either build cannot be read
        """
        old = PublishedGraph.open_build(old_path)
        new = PublishedGraph.open_build(new_path)
        return diff_graphs(old.documents(), new.documents())

    async def query(
        self,
        base: str,
        relations: Sequence[str] = (),
        start: Optional[str] = None,
        patch: Optional[str] = None,
        month: Optional[str] = None,
        link_only: bool = False,
    ) -> Any:
        """Run one query against a directory or an HTTP base URL.

        Args:
            base: Build directory, or an http(s) base URL
            relations: Relation path to follow
            start: Starting href for the relation path
            patch: Version-axis lookup (``9.0.10``)
            month: Time-axis lookup (``2025-10``); with ``patch`` descends
                to that patch through the month
            link_only: Return the last relation's link instead of fetching it

        Raises:
            RelGraphError: If the traversal fails
        """
        if base.startswith(("http://", "https://")):
            settings = ClientSettings(base_url=base)
            fetcher: Any = HttpFetcher(settings)
        else:
            settings = ClientSettings()
            fetcher = DirectoryFetcher(base)

        engine = QueryEngine(fetcher, settings)
        try:
            if month:
                year, _, mm = month.partition("-")
                if patch:
                    document = await engine.find_patch_in_month(year, mm, patch)
                else:
                    document = await engine.find_month(year, mm)
                start = start or document.href
            elif patch:
                document = await engine.find_patch(patch)
                start = start or document.href

            if link_only and relations:
                link = await engine.resolve_link(relations, start)
                return {"rel": link.relation, "href": link.href, "title": link.title}
            if relations or not (month or patch):
                document = await engine.follow(relations, start)
            return document.data
        finally:
            if isinstance(fetcher, HttpFetcher):
                await fetcher.close()


def _config_from_args(args: argparse.Namespace) -> GraphConfig:
    config = GraphConfig.from_env()
    facts = config.facts
    build = config.build
    publish = config.publish
    if args.facts:
        facts = replace(facts, path=args.facts)
    if args.cves:
        facts = replace(facts, cve_path=args.cves)
    if args.output:
        publish = replace(publish, output_dir=args.output)
    if getattr(args, "dry_run", False):
        publish = replace(publish, dry_run=True)
    if getattr(args, "keep_builds", None):
        publish = replace(publish, keep_builds=args.keep_builds)
    if args.on_frozen_mutation:
        build = replace(build, on_frozen_mutation=args.on_frozen_mutation)
    if args.max_workers:
        build = replace(build, max_workers=args.max_workers)
    config = replace(config, facts=facts, build=build, publish=publish)
    config.validate()
    return config


def _month_arg(value: str) -> str:
    if not re.fullmatch(r"\d{4}-\d{1,2}", value) or not 1 <= int(value.split("-")[1]) <= 12:
        raise argparse.ArgumentTypeError(f"invalid month '{value}', expected YYYY-MM")
    return value


def _patch_arg(value: str) -> str:
    if not re.fullmatch(r"\d+\.\d+\.\d+(-[0-9A-Za-z.]+)?", value):
        raise argparse.ArgumentTypeError(f"invalid patch version '{value}', expected e.g. 9.0.10")
    return value


def _add_build_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--facts", help="Release export (JSON or YAML)")
    parser.add_argument("--cves", help="Separate CVE export")
    parser.add_argument("--output", "-o", help="Output directory")
    parser.add_argument(
        "--on-frozen-mutation", choices=["raise", "hold"],
        help="Frozen mutation policy (default: hold the affected major subtree)",
    )
    parser.add_argument("--max-workers", type=int, help="Builder thread pool size")


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point for the graph tool."""
    parser = argparse.ArgumentParser(description="Release graph build and query tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # build command
    build_parser = subparsers.add_parser("build", help="Build and publish the graph")
    _add_build_flags(build_parser)
    build_parser.add_argument("--dry-run", action="store_true", help="Validate only")
    build_parser.add_argument("--keep-builds", type=int, help="Published builds to keep")

    # check command
    check_parser = subparsers.add_parser("check", help="Build and validate without publishing")
    _add_build_flags(check_parser)
    check_parser.add_argument(
        "--verify", action="store_true", help="Also verify the live build's checksums"
    )

    # diff command
    diff_parser = subparsers.add_parser("diff", help="Show differences between two builds")
    diff_parser.add_argument("--old", required=True, help="Old build directory")
    diff_parser.add_argument("--new", required=True, help="New build directory")
    diff_parser.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    # query command
    query_parser = subparsers.add_parser("query", help="Traverse a published graph")
    query_parser.add_argument("relations", nargs="*", help="Relation path to follow")
    query_parser.add_argument("--base", required=True, help="Build directory or base URL")
    query_parser.add_argument("--start", help="Starting href (default: /index.json)")
    query_parser.add_argument(
        "--patch", type=_patch_arg, help="Find a patch by version, e.g. 9.0.10"
    )
    query_parser.add_argument("--month", type=_month_arg, help="Find a month, e.g. 2025-10")
    query_parser.add_argument(
        "--link", action="store_true", help="Print the last relation's link instead of fetching it"
    )

    args = parser.parse_args(argv)
    cli = GraphCLI()

    if args.command in ("build", "check"):
        try:
            config = _config_from_args(args)
        except ValueError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)
        setup_logging(config)

    if args.command == "build":
        try:
            result = cli.build(config)
        except GraphError as e:
            print(f"Build FAILED: {e.message}", file=sys.stderr)
            sys.exit(1)

        receipt = result.receipt
        if receipt is None:
            print(f"Dry run passed: {len(result.build.resources)} resource(s) validated")
        elif receipt.published:
            print(f"Published {receipt.build_id} ({receipt.resources} resources)")
        else:
            print(f"Graph unchanged; {receipt.build_id} stays live")
        for held in result.build.held:
            print(f"  [HELD] {held.message}")
        sys.exit(0)

    elif args.command == "check":
        passed, issues = cli.check(config, verify=args.verify)
        if passed:
            print("Graph check passed")
            sys.exit(0)
        else:
            print(f"Graph check FAILED with {len(issues)} issue(s):")
            for issue in issues:
                print(f"  - {issue}")
            sys.exit(1)

    elif args.command == "diff":
        try:
            changes = cli.diff(args.old, args.new)
        except PublishError as e:
            print(e.message, file=sys.stderr)
            sys.exit(1)

        if args.format == "json":
            print(json.dumps(
                [
                    {
                        "kind": c.kind.name,
                        "uri": c.uri,
                        "mutability": c.mutability.value,
                        "path": c.path,
                        "old_value": c.old_value,
                        "new_value": c.new_value,
                        "is_violation": c.is_violation,
                    }
                    for c in changes
                ],
                indent=2,
            ))
        else:
            if not changes:
                print("No changes detected")
            else:
                summary = summarize(changes)
                print(
                    f"Found {len(changes)} change(s) "
                    f"(cold {summary['cold']}, warm {summary['warm']}, frozen {summary['frozen']}):"
                )
                for change in changes:
                    print(f"  {change}")

        # Exit with error if a frozen resource changed
        sys.exit(1 if any(c.is_violation for c in changes) else 0)

    elif args.command == "query":
        try:
            output = asyncio.run(cli.query(
                args.base,
                args.relations,
                start=args.start,
                patch=args.patch,
                month=args.month,
                link_only=args.link,
            ))
        except RelGraphError as e:
            print(f"Query failed: {e.message}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
