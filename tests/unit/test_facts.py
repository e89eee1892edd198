"""
Unit tests for the release fact feed.

Tests cover:
- ReleaseFact validation and wire form
- FactSet grouping, ordering and conflicts
- File sources (JSON and YAML), all-or-nothing loading
"""

import json
from datetime import date

import pytest
import yaml

from releases.relgraph.errors import FactSourceError
from releases.relgraph.facts import (
    CveRecord,
    FactSet,
    FileFactSource,
    InMemoryFactSource,
    ReleaseFact,
    ReleaseType,
    SupportPhase,
    create_fact_source,
)
from tests.factories import CVE_IDS, eight_oh, make_fact, nine_oh


class TestReleaseFact:
    """Tests for ReleaseFact."""

    def test_release_type_derived_from_major(self):
        """Even majors are LTS, odd majors STS."""
        assert make_fact("8.0.21", date(2025, 10, 14)).release_type == ReleaseType.LTS
        assert make_fact("9.0.10", date(2025, 10, 14)).release_type == ReleaseType.STS

    def test_explicit_release_type_kept(self):
        """An explicit release type overrides the derived one."""
        fact = make_fact("9.0.10", date(2025, 10, 14), release_type=ReleaseType.LTS)
        assert fact.release_type == ReleaseType.LTS

    def test_patch_must_belong_to_major(self):
        """A patch version outside its major is rejected."""
        with pytest.raises(ValueError, match="does not belong"):
            ReleaseFact(major_version="9.0", patch_version="8.0.1", release_date=date(2025, 1, 1))

    def test_invalid_version_rejected(self):
        """A patch version with a non-numeric core is rejected."""
        with pytest.raises(ValueError, match="Invalid version"):
            ReleaseFact(major_version="9.0", patch_version="9.0.x", release_date=date(2025, 1, 1))

    def test_wire_form_round_trip(self):
        """to_dict/from_dict use camelCase and preserve every field."""
        fact = nine_oh()[1]
        data = fact.to_dict()

        assert data["patchVersion"] == "9.0.10"
        assert data["isSecurity"] is True
        assert data["cveIds"] == list(CVE_IDS)
        assert data["releaseType"] == "sts"
        assert ReleaseFact.from_dict(data) == fact

    def test_from_dict_missing_fields(self):
        """Missing required fields are reported."""
        with pytest.raises(ValueError, match="releaseDate"):
            ReleaseFact.from_dict({"majorVersion": "9.0", "patchVersion": "9.0.1"})

    def test_from_dict_bad_date(self):
        """Malformed dates are rejected."""
        with pytest.raises(ValueError, match="not a valid ISO date"):
            ReleaseFact.from_dict(
                {"majorVersion": "9.0", "patchVersion": "9.0.1", "releaseDate": "14/10/2025"}
            )

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"isSecurity": "false"}, "'isSecurity' must be a boolean"),
            ({"isSecurity": 1}, "'isSecurity' must be a boolean"),
            ({"cveIds": "CVE-2025-55247"}, "'cveIds' must be a list of strings"),
            ({"cveIds": [55247]}, "'cveIds' must be a list of strings"),
            ({"sdkPatches": "9.0.306"}, "'sdkPatches' must be a list of strings"),
        ],
    )
    def test_from_dict_malformed_values(self, overrides, message):
        """Wrongly typed values are rejected, never coerced."""
        data = make_fact("9.0.10", date(2025, 10, 14)).to_dict()
        data.update(overrides)
        with pytest.raises(ValueError, match=message):
            ReleaseFact.from_dict(data)

    def test_cve_fix_commits_must_be_list(self):
        with pytest.raises(ValueError, match="'fixCommits' must be a list of strings"):
            CveRecord.from_dict({"id": "CVE-2025-55247", "fixCommits": "https://github.com/x"})

    def test_support_phase_supported(self):
        """Only active and maintenance phases are supported."""
        assert SupportPhase.ACTIVE.supported
        assert SupportPhase.MAINTENANCE.supported
        assert not SupportPhase.PREVIEW.supported
        assert not SupportPhase.EOL.supported


class TestFactSet:
    """Tests for FactSet."""

    def test_groups_by_major_in_release_order(self):
        """Facts are grouped per major, oldest first."""
        facts = FactSet(facts=tuple(reversed(nine_oh() + eight_oh())))

        groups = facts.by_major()

        assert [f.patch_version for f in groups["9.0"]] == ["9.0.9", "9.0.10", "9.0.11"]
        assert [f.patch_version for f in groups["8.0"]] == ["8.0.20", "8.0.21"]

    def test_groups_by_month(self):
        """Same-day releases are ordered by version."""
        facts = FactSet(facts=tuple(nine_oh() + eight_oh()))

        months = facts.by_month()

        assert list(months) == [(2025, 9), (2025, 10), (2025, 11)]
        assert [f.patch_version for f in months[(2025, 10)]] == ["8.0.21", "9.0.10"]

    def test_duplicate_identical_facts_collapse(self):
        """The same fact twice is kept once."""
        fact = nine_oh()[0]
        assert len(FactSet(facts=(fact, fact))) == 1

    def test_conflicting_facts_rejected(self):
        """Two different facts for one patch version are rejected."""
        a = make_fact("9.0.9", date(2025, 9, 1))
        b = make_fact("9.0.9", date(2025, 9, 2))
        with pytest.raises(ValueError, match="Conflicting facts"):
            FactSet(facts=(a, b))

    def test_replace_major(self):
        """replace_major swaps one major's facts and keeps the rest."""
        facts = FactSet(facts=tuple(nine_oh() + eight_oh()))

        replaced = facts.replace_major("9.0", nine_oh()[:1])

        assert [f.patch_version for f in replaced.by_major()["9.0"]] == ["9.0.9"]
        assert len(replaced.by_major()["8.0"]) == 2

    def test_fingerprint_deterministic(self):
        """Input order does not change the fingerprint."""
        a = FactSet(facts=tuple(nine_oh()))
        b = FactSet(facts=tuple(reversed(nine_oh())))
        assert a.fingerprint() == b.fingerprint()
        assert a.fingerprint().startswith("sha256:")


class TestFactSources:
    """Tests for fact sources."""

    def _export(self):
        return {
            "releases": [f.to_dict() for f in nine_oh()],
            "cves": [{"id": "CVE-2025-55247", "title": "DoS", "cvssScore": 7.3}],
        }

    @pytest.mark.asyncio
    async def test_in_memory_source(self):
        """InMemoryFactSource returns a FactSet keyed by CVE id."""
        source = InMemoryFactSource(nine_oh(), [CveRecord("CVE-2025-55247")])

        facts = await source.load()

        assert len(facts) == 3
        assert "CVE-2025-55247" in facts.cves

    @pytest.mark.asyncio
    async def test_in_memory_conflict_is_source_error(self):
        """Conflicting in-memory facts surface as FactSourceError."""
        source = InMemoryFactSource(
            [make_fact("9.0.9", date(2025, 9, 1)), make_fact("9.0.9", date(2025, 9, 3))]
        )
        with pytest.raises(FactSourceError):
            await source.load()

    @pytest.mark.asyncio
    async def test_json_export(self, tmp_path):
        """A JSON export loads releases and CVEs."""
        path = tmp_path / "releases.json"
        path.write_text(json.dumps(self._export()))

        facts = await FileFactSource(path).load()

        assert [f.patch_version for f in facts] == ["9.0.9", "9.0.10", "9.0.11"]
        assert facts.cves["CVE-2025-55247"].cvss_score == 7.3

    @pytest.mark.asyncio
    async def test_yaml_export_with_separate_cves(self, tmp_path):
        """YAML is chosen by suffix; CVEs may come from a second file."""
        data = self._export()
        cves = {"cves": data.pop("cves")}
        path = tmp_path / "releases.yaml"
        path.write_text(yaml.safe_dump(data))
        cve_path = tmp_path / "cves.json"
        cve_path.write_text(json.dumps(cves))

        facts = await FileFactSource(path, cve_path).load()

        assert len(facts) == 3
        assert facts.cves["CVE-2025-55247"].title == "DoS"

    @pytest.mark.asyncio
    async def test_one_bad_record_fails_the_load(self, tmp_path):
        """Loading is all-or-nothing."""
        data = self._export()
        data["releases"].append({"majorVersion": "9.0", "patchVersion": "9.0.12"})
        path = tmp_path / "releases.json"
        path.write_text(json.dumps(data))

        with pytest.raises(FactSourceError, match="release record #3"):
            await FileFactSource(path).load()

    @pytest.mark.asyncio
    async def test_mistyped_record_fails_the_load(self, tmp_path):
        """A string where a boolean or list belongs is a FactSourceError."""
        data = self._export()
        data["releases"][0].update({"isSecurity": "false", "cveIds": "CVE-2025-1"})
        path = tmp_path / "releases.json"
        path.write_text(json.dumps(data))

        with pytest.raises(FactSourceError, match="Invalid release record #0: 'isSecurity'"):
            await FileFactSource(path).load()

    @pytest.mark.asyncio
    async def test_missing_releases_list(self, tmp_path):
        """An export without a releases list is rejected."""
        path = tmp_path / "releases.json"
        path.write_text(json.dumps({"cves": []}))

        with pytest.raises(FactSourceError, match="no 'releases' list"):
            await FileFactSource(path).load()

    @pytest.mark.asyncio
    async def test_unparseable_file(self, tmp_path):
        """Malformed JSON is a FactSourceError."""
        path = tmp_path / "releases.json"
        path.write_text("{not json")

        with pytest.raises(FactSourceError, match="Cannot parse"):
            await FileFactSource(path).load()

    def test_create_requires_path(self):
        """No configured path is an error."""
        with pytest.raises(FactSourceError, match="RELGRAPH_FACTS_PATH"):
            create_fact_source(None)
