"""
Unit tests for graph diffs and version ordering.
"""

import pytest

from releases.relgraph.graph.diff import (
    ChangeKind,
    diff_graphs,
    diff_inputs,
    fingerprint,
    summarize,
)
from releases.relgraph.schema.types import MutabilityClass
from releases.relgraph.versions import is_prerelease, latest, version_key


def patch_doc(**links):
    links.setdefault("self", {"href": "/9.0/9.0.10/index.json"})
    return {
        "kind": "patch-index",
        "version": "9.0.10",
        "date": "2025-10-14",
        "security": True,
        "_links": links,
    }


def major_doc(latest_patch):
    return {
        "kind": "major-version-index",
        "version": "9.0",
        "latestPatch": latest_patch,
        "_links": {"self": {"href": "/9.0/index.json"}},
    }


class TestDiffGraphs:
    """Tests for diff_graphs."""

    def test_identical_graphs(self):
        graph = {"/9.0/9.0.10/index.json": patch_doc()}
        assert diff_graphs(graph, dict(graph)) == []

    def test_next_link_on_frozen_is_allowed(self):
        """Appending next is the only permitted frozen change."""
        old = {"/9.0/9.0.10/index.json": patch_doc()}
        new = {"/9.0/9.0.10/index.json": patch_doc(next={"href": "/9.0/9.0.11/index.json"})}

        changes = diff_graphs(old, new)

        assert [(c.kind, c.path) for c in changes] == [(ChangeKind.LINK_ADDED, "next")]
        assert not changes[0].is_violation

    def test_frozen_field_change_is_violation(self):
        old = {"/9.0/9.0.10/index.json": patch_doc()}
        changed = patch_doc()
        changed["security"] = False

        changes = diff_graphs(old, {"/9.0/9.0.10/index.json": changed})

        assert changes[0].kind == ChangeKind.FIELD_CHANGED
        assert changes[0].is_violation
        assert "VIOLATION" in str(changes[0])

    def test_warm_changes_are_free(self):
        old = {"/9.0/index.json": major_doc("9.0.10")}
        new = {"/9.0/index.json": major_doc("9.0.11")}

        changes = diff_graphs(old, new)

        assert changes[0].mutability is MutabilityClass.WARM
        assert not changes[0].is_violation

    def test_added_and_removed_resources(self):
        """New frozen resources are fine; removed ones are not."""
        old = {"/9.0/9.0.9/index.json": patch_doc()}
        new = {"/9.0/9.0.10/index.json": patch_doc()}

        changes = {c.uri: c for c in diff_graphs(old, new)}

        assert changes["/9.0/9.0.10/index.json"].kind == ChangeKind.RESOURCE_ADDED
        assert not changes["/9.0/9.0.10/index.json"].is_violation
        assert changes["/9.0/9.0.9/index.json"].kind == ChangeKind.RESOURCE_REMOVED
        assert changes["/9.0/9.0.9/index.json"].is_violation

    def test_summarize(self):
        old = {"/9.0/index.json": major_doc("9.0.10"), "/9.0/9.0.10/index.json": patch_doc()}
        new = {"/9.0/index.json": major_doc("9.0.11")}

        summary = summarize(diff_graphs(old, new))

        assert summary == {"frozen": 1, "cold": 0, "warm": 1, "violations": 1}


class TestFingerprints:
    """Tests for fingerprint and diff_inputs."""

    def test_key_order_irrelevant(self):
        assert fingerprint({"a": 1, "b": [2]}) == fingerprint({"b": [2], "a": 1})

    def test_diff_inputs(self):
        lines = diff_inputs({"security": True, "date": "2025-10-14"}, {"security": False, "date": "2025-10-14"})
        assert lines == ["security: True -> False"]


class TestVersions:
    """Tests for version ordering."""

    def test_numeric_ordering(self):
        assert version_key("9.0.10") > version_key("9.0.9")
        assert version_key("10.0.0") > version_key("9.0.11")

    def test_prerelease_before_release(self):
        ordered = sorted(
            ["10.0.0", "10.0.0-rc.1", "10.0.0-preview.10", "10.0.0-preview.7"],
            key=version_key,
        )
        assert ordered == ["10.0.0-preview.7", "10.0.0-preview.10", "10.0.0-rc.1", "10.0.0"]

    def test_invalid_version(self):
        with pytest.raises(ValueError, match="Invalid version"):
            version_key("nine")

    def test_helpers(self):
        assert is_prerelease("10.0.0-rc.1")
        assert not is_prerelease("9.0.10")
        assert latest(["9.0.9", "9.0.11", "9.0.10"]) == "9.0.11"
        assert latest([]) is None
