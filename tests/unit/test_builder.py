"""
Unit tests for the graph builder.

Tests cover:
- Document shapes of every kind
- The three-patch 9.0 scenario
- Dual-path identity of patch summaries
- prev/next chains and deterministic output
- Root cold-ness
- Partial facts
- Frozen reconciliation: reuse, next append, mutation, hold
"""

from dataclasses import replace
from datetime import date

import pytest

from releases.relgraph.config import BuildConfig
from releases.relgraph.errors import FrozenResourceMutationDetected
from releases.relgraph.facts.types import FactSet, SupportPhase
from releases.relgraph.graph.builder import GraphBuilder
from releases.relgraph.graph.validator import ConsistencyValidator
from releases.relgraph.schema.types import MutabilityClass, ResourceKind
from tests.factories import CVE_IDS, eight_oh, fact_set, make_fact, nine_oh

MAJOR_9 = "/9.0/index.json"
PATCH_9_10 = "/9.0/9.0.10/index.json"
OCTOBER = "/timeline/2025/10/index.json"


class PublishedBuild:
    """Previous publication backed by an in-memory build result."""

    def __init__(self, result):
        self.frozen_records = result.frozen_records
        self.facts = result.facts
        self._documents = result.documents()

    def document(self, uri):
        return self._documents.get(uri)


def item(resource, collection, version):
    for entry in resource.items(collection):
        if entry.fields.get("version") == version:
            return entry
    raise AssertionError(f"{version} not embedded in {resource.uri}")


class TestScenario:
    """The three-patch 9.0 history."""

    @pytest.fixture
    def result(self, builder, scenario_facts):
        return builder.build(scenario_facts)

    def test_major_currency(self, result):
        """The major index owns latest and latest security patch."""
        major = result.resources[MAJOR_9]
        assert major.get("latestPatch") == "9.0.11"
        assert major.get("latestSecurityPatch") == "9.0.10"
        assert major.link("latest").href == "/9.0/9.0.11/index.json"
        assert major.link("latest-security").href == PATCH_9_10

    def test_patch_chain_and_cves(self, result):
        """9.0.10 sits between 9.0.9 and 9.0.11 and lists its CVEs."""
        patch = result.resources[PATCH_9_10]
        assert patch.link("prev").href == "/9.0/9.0.9/index.json"
        assert patch.link("next").href == "/9.0/9.0.11/index.json"
        assert patch.get("cveIds") == list(CVE_IDS)
        assert patch.get("security") is True

    def test_root_has_no_patch_data(self, result):
        """Root summaries carry only lifecycle data."""
        root = result.resources["/index.json"]
        summary = item(root, "majors", "9.0")

        assert set(summary.fields) <= {"version", "releaseType", "supported", "eolDate"}
        assert summary.fields["supported"] is True
        assert summary.fields["eolDate"] == "2026-11-10"
        assert "9.0.1" not in root.to_json()

    def test_root_navigation(self, result):
        """Root points at the latest major and the timeline."""
        root = result.resources["/index.json"]
        assert root.get("latestMajorVersion") == "9.0"
        assert root.get("latestLtsVersion") is None
        assert root.link("latest").href == MAJOR_9
        assert root.link("timeline").href == "/timeline/index.json"

    def test_disclosures(self, result):
        """Disclosures project CVE records, fix commits as links."""
        patch = result.resources[PATCH_9_10]
        disclosures = patch.items("disclosures")

        assert [d.fields["id"] for d in disclosures] == list(CVE_IDS)
        assert disclosures[0].fields["cvssScore"] == 7.3
        assert len([l for l in disclosures[1].links if l.relation == "fix-commit"]) == 2

    def test_patch_wormholes(self, result):
        """Patches link to their month, CVE document and newest SDK."""
        patch = result.resources[PATCH_9_10]
        assert patch.link("release-month").href == OCTOBER
        assert patch.link("cve-json").href == "/timeline/2025/10/cve.json"
        assert patch.link("latest-sdk").href == "/9.0/sdk/9.0.306.json"

    def test_no_warnings(self, result):
        """Complete facts produce no partial-fact warnings."""
        assert result.warnings == []

    def test_passes_consistency(self, result):
        """The built graph satisfies every consistency rule."""
        assert ConsistencyValidator().validate(result.index).ok


class TestShapes:
    """Document shapes across two majors."""

    @pytest.fixture
    def result(self, builder, facts):
        return builder.build(facts)

    def test_resource_set(self, result):
        """One resource per major, patch, year and month, plus root and timeline."""
        assert set(result.resources) == {
            "/index.json",
            "/timeline/index.json",
            "/timeline/2025/index.json",
            "/timeline/2025/09/index.json",
            OCTOBER,
            "/timeline/2025/11/index.json",
            "/8.0/index.json",
            "/8.0/8.0.20/index.json",
            "/8.0/8.0.21/index.json",
            MAJOR_9,
            "/9.0/9.0.9/index.json",
            PATCH_9_10,
            "/9.0/9.0.11/index.json",
        }

    def test_mutability_classes(self, result):
        """Frozen records exist for frozen resources only."""
        frozen = {r.uri for r in result.by_class(MutabilityClass.FROZEN)}
        assert frozen == set(result.frozen_records)
        assert {r.uri for r in result.by_class(MutabilityClass.COLD)} == {
            "/index.json", "/timeline/index.json",
        }

    def test_root_latest_lts(self, result):
        """LTS is tracked separately from the newest major."""
        root = result.resources["/index.json"]
        assert root.get("latestLtsVersion") == "8.0"
        assert [i.fields["version"] for i in root.items("majors")] == ["9.0", "8.0"]

    def test_major_patches_newest_first(self, result):
        """Embedded patches are newest first."""
        major = result.resources[MAJOR_9]
        assert [i.fields["version"] for i in major.items("patches")] == ["9.0.11", "9.0.10", "9.0.9"]

    def test_month(self, result):
        """A month lists every patch it shipped and their CVEs."""
        month = result.resources[OCTOBER]
        assert month.get("releases") == 2
        assert month.get("cveIds") == list(CVE_IDS)
        assert [i.fields["version"] for i in month.items("patches")] == ["9.0.10", "8.0.21"]
        assert month.link("prev").href == "/timeline/2025/09/index.json"
        assert month.link("next").href == "/timeline/2025/11/index.json"
        assert month.link("cve-json").href == "/timeline/2025/10/cve.json"

    def test_year(self, result):
        """A year summarizes its months, newest first."""
        year = result.resources["/timeline/2025/index.json"]
        months = year.items("months")
        assert [m.fields["month"] for m in months] == ["11", "10", "09"]
        assert months[1].fields == {"month": "10", "releases": 2, "security": True, "cveCount": 3}

    def test_timeline(self, result):
        """The timeline lists years and points up to the root."""
        timeline = result.resources["/timeline/index.json"]
        assert [i.fields["year"] for i in timeline.items("years")] == ["2025"]
        assert timeline.link("up").href == "/index.json"

    def test_dual_path_identity(self, result):
        """A patch summary is identical whether reached by version or by time."""
        for fact in result.facts:
            major = result.resources[f"/{fact.major_version}/index.json"]
            year, month = fact.year_month
            month_index = result.resources[f"/timeline/{year}/{month:02d}/index.json"]

            by_version = item(major, "patches", fact.patch_version)
            by_time = item(month_index, "patches", fact.patch_version)
            spec = major.schema.get_collection("patches")
            assert by_version.to_dict(spec) == by_time.to_dict(spec)

            patch = result.resources[by_version.link("self").href]
            for name in ("version", "date", "cveIds", "sdkPatches"):
                assert patch.get(name) == by_version.fields.get(name)

    def test_chain_walk(self, result):
        """Walking next from the first patch visits every patch in order."""
        for major, group in result.facts.by_major().items():
            uri = f"/{major}/{group[0].patch_version}/index.json"
            visited = [uri]
            while result.resources[uri].link("next") is not None:
                uri = result.resources[uri].link("next").href
                visited.append(uri)
            assert visited == [f"/{major}/{f.patch_version}/index.json" for f in group]

            while result.resources[uri].link("prev") is not None:
                uri = result.resources[uri].link("prev").href
            assert uri == visited[0]


class TestDeterminism:
    """Identical facts produce identical bytes."""

    def test_rebuild_identical(self, facts):
        """Worker count and run do not change the output."""
        first = GraphBuilder(BuildConfig(max_workers=1)).build(facts)
        second = GraphBuilder(BuildConfig(max_workers=4)).build(facts)

        assert list(first.resources) == list(second.resources)
        for uri, resource in first.resources.items():
            assert resource.to_json() == second.resources[uri].to_json()
        assert first.fingerprint() == second.fingerprint()


class TestSameDayReleases:
    """Patches of one major shipped on the same day."""

    @pytest.fixture
    def result(self, builder):
        day = date(2025, 9, 1)
        return builder.build(fact_set(
            make_fact("9.0.100", day), make_fact("9.0.9", day), make_fact("9.0.99", day),
        ))

    def test_chain_in_numeric_version_order(self, result):
        """Ties are broken numerically: 9.0.99 comes before 9.0.100."""
        first = result.resources["/9.0/9.0.9/index.json"]
        middle = result.resources["/9.0/9.0.99/index.json"]
        last = result.resources["/9.0/9.0.100/index.json"]

        assert first.link("prev") is None
        assert first.link("next").href == "/9.0/9.0.99/index.json"
        assert middle.link("prev").href == "/9.0/9.0.9/index.json"
        assert middle.link("next").href == "/9.0/9.0.100/index.json"
        assert last.link("next") is None

    def test_latest_patch(self, result):
        major = result.resources[MAJOR_9]
        assert major.get("latestPatch") == "9.0.100"
        assert [i.fields["version"] for i in major.items("patches")] == ["9.0.100", "9.0.99", "9.0.9"]


class TestRootColdness:
    """Root does not change when a patch ships."""

    def test_new_patch_leaves_root_untouched(self, builder):
        before = builder.build(fact_set(*nine_oh()[:2], *eight_oh()))
        after = builder.build(fact_set(*nine_oh(), *eight_oh()))

        assert before.resources["/index.json"].to_json() == after.resources["/index.json"].to_json()
        assert before.resources[MAJOR_9].to_json() != after.resources[MAJOR_9].to_json()

    def test_new_major_changes_root(self, builder):
        preview = make_fact(
            "10.0.0-rc.1", date(2025, 9, 9), support_phase=SupportPhase.PREVIEW, eol_date=None
        )
        before = builder.build(fact_set(*nine_oh()))
        after = builder.build(fact_set(*nine_oh(), preview))

        root = after.resources["/index.json"]
        assert root.to_json() != before.resources["/index.json"].to_json()
        assert root.get("latestMajorVersion") == "9.0"
        assert item(root, "majors", "10.0").fields["supported"] is False


class TestPartialFacts:
    """Missing upstream data is omitted and reported."""

    def test_security_patch_without_cves(self, builder):
        fact = make_fact("9.0.10", date(2025, 10, 14), is_security=True)
        result = builder.build(FactSet(facts=(fact,)))

        patch = result.resources[PATCH_9_10]
        assert "cveIds" not in patch.fields
        assert "cveIds" in [w.missing for w in result.warnings]

    def test_missing_cve_record(self, builder):
        fact = make_fact("9.0.10", date(2025, 10, 14), is_security=True, cve_ids=("CVE-2025-1",))
        result = builder.build(FactSet(facts=(fact,)))

        disclosures = result.resources[PATCH_9_10].items("disclosures")
        assert disclosures[0].fields == {"id": "CVE-2025-1"}
        assert "disclosures[CVE-2025-1]" in [w.missing for w in result.warnings]

    def test_missing_eol(self, builder):
        fact = make_fact("9.0.10", date(2025, 10, 14), eol_date=None)
        result = builder.build(FactSet(facts=(fact,)))

        assert "eolDate" not in result.resources[MAJOR_9].fields
        assert "eolDate" in [w.missing for w in result.warnings]

    def test_missing_sdk(self, builder):
        fact = make_fact("9.0.10", date(2025, 10, 14))
        result = builder.build(FactSet(facts=(fact,)))

        patch = result.resources[PATCH_9_10]
        assert patch.link("latest-sdk") is None
        assert "sdk" not in patch.embedded
        assert "latest-sdk" in [w.missing for w in result.warnings]


class TestFrozenReconciliation:
    """Frozen resources across builds."""

    def test_unchanged_facts_reuse_everything(self, builder, facts):
        first = builder.build(facts)
        second = builder.build(facts, PublishedBuild(first))

        assert second.reused == sorted(first.frozen_records)
        assert second.fingerprint() == first.fingerprint()

    def test_new_patch_appends_next(self, builder):
        first = builder.build(fact_set(*nine_oh()[:2]))
        assert first.resources[PATCH_9_10].link("next") is None

        second = builder.build(fact_set(*nine_oh()), PublishedBuild(first))
        fresh = builder.build(fact_set(*nine_oh()))

        assert PATCH_9_10 in second.reused
        assert second.resources[PATCH_9_10].link("next").href == "/9.0/9.0.11/index.json"
        assert second.resources[PATCH_9_10].to_json() == fresh.resources[PATCH_9_10].to_json()
        assert second.frozen_records[PATCH_9_10].next == "/9.0/9.0.11/index.json"
        assert second.resources[OCTOBER].link("next").href == "/timeline/2025/11/index.json"

    def test_changed_fact_raises(self, strict_builder, facts):
        first = strict_builder.build(facts)
        changed = list(nine_oh())
        changed[1] = replace(changed[1], sdk_patches=("9.0.306", "9.0.111", "9.0.100"))

        with pytest.raises(FrozenResourceMutationDetected) as exc:
            strict_builder.build(fact_set(*changed, *eight_oh()), PublishedBuild(first))

        assert exc.value.uri == PATCH_9_10
        assert exc.value.subtree == "9.0"
        assert any(c.startswith("sdkPatches") for c in exc.value.changes)

    def test_removed_fact_raises(self, strict_builder, scenario_facts):
        first = strict_builder.build(scenario_facts)

        with pytest.raises(FrozenResourceMutationDetected, match="9.0.9"):
            strict_builder.build(fact_set(*nine_oh()[1:]), PublishedBuild(first))

    def test_release_in_published_month_raises(self, strict_builder, scenario_facts):
        first = strict_builder.build(scenario_facts)
        late = make_fact("8.0.21", date(2025, 10, 20))

        with pytest.raises(FrozenResourceMutationDetected) as exc:
            strict_builder.build(fact_set(*nine_oh(), late), PublishedBuild(first))
        assert exc.value.uri == OCTOBER
        assert "release 8.0.21 added to a published month" in exc.value.changes

    def test_hold_keeps_subtree_and_publishes_rest(self, facts):
        builder = GraphBuilder(BuildConfig(max_workers=2, on_frozen_mutation="hold"))
        first = builder.build(facts)

        changed = list(nine_oh())
        changed[2] = replace(changed[2], sdk_patches=("9.0.308",))
        new_patch = make_fact("8.0.22", date(2025, 12, 9), sdk_patches=("8.0.416",))
        second = builder.build(
            fact_set(*changed, *eight_oh(), new_patch), PublishedBuild(first)
        )

        assert {m.subtree for m in second.held} == {"9.0"}
        assert "/8.0/8.0.22/index.json" in second.resources
        assert second.resources["/8.0/8.0.21/index.json"].link("next").href == "/8.0/8.0.22/index.json"
        held_uri = "/9.0/9.0.11/index.json"
        assert second.resources[held_uri].to_json() == first.resources[held_uri].to_json()
        assert second.facts.get("9.0.11").sdk_patches == nine_oh()[2].sdk_patches
        assert ConsistencyValidator().validate(second.index).ok

    def test_default_policy_blocks_only_the_affected_subtree(self, facts):
        """A default builder publishes the unaffected major instead of aborting."""
        builder = GraphBuilder()
        first = builder.build(facts)

        changed = list(nine_oh())
        changed[2] = replace(changed[2], sdk_patches=("9.0.308",))
        new_patch = make_fact("8.0.22", date(2025, 12, 9))
        second = builder.build(fact_set(*changed, *eight_oh(), new_patch), PublishedBuild(first))

        assert {m.subtree for m in second.held} == {"9.0"}
        assert "/8.0/8.0.22/index.json" in second.resources
        assert second.resources["/8.0/index.json"].get("latestPatch") == "8.0.22"

    def test_late_release_keeps_major_held(self, builder, facts):
        """A release added to a published month holds its major on later builds too."""
        first = builder.build(facts)
        late = make_fact("8.0.22", date(2025, 11, 20))
        second = builder.build(fact_set(*facts, late), PublishedBuild(first))

        following = make_fact("8.0.23", date(2026, 1, 13))
        third = builder.build(fact_set(*facts, late, following), PublishedBuild(second))

        assert {m.subtree for m in second.held} == {"8.0"}
        assert {m.subtree for m in third.held} == {"8.0"}
        assert "/8.0/8.0.23/index.json" not in third.resources
        assert third.facts.get("8.0.23") is None

    def test_hold_without_published_facts_raises(self, facts):
        builder = GraphBuilder(BuildConfig(on_frozen_mutation="hold"))
        first = builder.build(facts)
        previous = PublishedBuild(first)
        previous.facts = None

        changed = list(nine_oh())
        changed[0] = replace(changed[0], sdk_patches=())
        with pytest.raises(FrozenResourceMutationDetected):
            builder.build(fact_set(*changed, *eight_oh()), previous)

    def test_patch_summary_same_for_both_sources(self, builder):
        fact = nine_oh()[1]
        by_version = builder.patch_summary(fact, ResourceKind.MAJOR)
        by_time = builder.patch_summary(fact, ResourceKind.MONTH)
        assert by_version == by_time
