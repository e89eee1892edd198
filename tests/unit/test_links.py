"""
Unit tests for link resolution.

Tests cover:
- URI hierarchy and parsing
- Wormhole registration rules
- prev/next chains
- Link resolution for resources and embedded items
"""

from datetime import date

import pytest

from releases.relgraph.graph.links import (
    ChainEntry,
    LinkResolver,
    MajorSubject,
    WormholeRegistry,
    WormholeRule,
    build_chain,
    create_default_wormholes,
)
from releases.relgraph.graph.uris import (
    cve_json_uri,
    kind_of,
    major_uri,
    month_uri,
    parse_uri,
    patch_uri,
    sdk_uri,
)
from releases.relgraph.schema.types import JSON_MEDIA_TYPE, ResourceKind
from tests.factories import make_fact, nine_oh


class TestUris:
    """Tests for the URI hierarchy."""

    def test_builders(self):
        """Months are zero-padded; patches nest under their major."""
        assert major_uri("9.0") == "/9.0/index.json"
        assert patch_uri("9.0", "9.0.10") == "/9.0/9.0.10/index.json"
        assert month_uri(2025, 9) == "/timeline/2025/09/index.json"
        assert cve_json_uri(2025, 10) == "/timeline/2025/10/cve.json"
        assert sdk_uri("9.0", "9.0.306") == "/9.0/sdk/9.0.306.json"

    @pytest.mark.parametrize(
        "href,kind",
        [
            ("/index.json", ResourceKind.ROOT),
            ("/9.0/index.json", ResourceKind.MAJOR),
            ("/9.0/9.0.10/index.json", ResourceKind.PATCH),
            ("/10.0/10.0.0-preview.7/index.json", ResourceKind.PATCH),
            ("/timeline/index.json", ResourceKind.TIMELINE),
            ("/timeline/2025/index.json", ResourceKind.YEAR),
            ("/timeline/2025/10/index.json", ResourceKind.MONTH),
            ("/timeline/2025/10/cve.json", ResourceKind.CVE_DOCUMENT),
            ("/9.0/sdk/9.0.306.json", ResourceKind.SDK_RELEASE),
        ],
    )
    def test_kind_of(self, href, kind):
        """Every path in the hierarchy resolves to its kind."""
        assert kind_of(href) is kind

    def test_parse_params(self):
        """Path parameters are extracted."""
        parsed = parse_uri("/timeline/2025/10/index.json")
        assert parsed.params == {"year": "2025", "month": "10"}

    def test_unknown_path(self):
        """Paths outside the hierarchy resolve to nothing."""
        assert parse_uri("/timeline/2025/1/index.json") is None
        assert kind_of("/9.0/releases.json") is None


class TestWormholeRegistry:
    """Tests for wormhole registration."""

    def _latest(self, subject):
        return "/9.0/index.json", ".NET 9.0"

    def test_warm_target_rejected(self):
        """A wormhole may not target a warm kind."""
        registry = WormholeRegistry()
        with pytest.raises(ValueError, match="frozen or cold"):
            registry.register(
                WormholeRule(ResourceKind.PATCH, "up", ResourceKind.MAJOR, self._latest)
            )

    def test_relation_must_be_permitted(self):
        """The source schema must permit the relation."""
        registry = WormholeRegistry()
        with pytest.raises(ValueError, match="not permitted"):
            registry.register(
                WormholeRule(ResourceKind.ROOT, "latest-security", ResourceKind.PATCH, self._latest)
            )

    def test_collection_must_exist(self):
        """Item-level wormholes need an existing collection."""
        registry = WormholeRegistry()
        with pytest.raises(ValueError, match="no collection"):
            registry.register(
                WormholeRule(
                    ResourceKind.ROOT, "release-month", ResourceKind.MONTH, self._latest, "patches"
                )
            )

    def test_duplicate_rejected(self):
        """A (source, collection, relation) rule is registered once."""
        registry = create_default_wormholes()
        with pytest.raises(ValueError, match="already registered"):
            registry.register(
                WormholeRule(ResourceKind.PATCH, "release-month", ResourceKind.MONTH, self._latest)
            )

    def test_default_rules(self):
        """The default registry only targets frozen or cold kinds."""
        registry = create_default_wormholes()
        assert registry.is_wormhole(ResourceKind.MAJOR, "latest-security")
        assert registry.is_wormhole(ResourceKind.MONTH, "cve-json", "patches")
        assert not registry.is_wormhole(ResourceKind.ROOT, "latest")
        for rule in registry:
            assert rule.target.mutability.value in ("frozen", "cold")

    def test_both_axes_share_item_rules(self):
        """Patch summaries get the same wormholes on both axes."""
        registry = create_default_wormholes()
        major = {r.relation for r in registry.rules_for(ResourceKind.MAJOR, "patches")}
        month = {r.relation for r in registry.rules_for(ResourceKind.MONTH, "patches")}
        assert major == month == {"release-month", "cve-json"}


class TestChains:
    """Tests for prev/next chains."""

    def test_chain_order(self):
        """Entries are linked in key order regardless of input order."""
        entries = [
            ChainEntry("/c", (3,), "c"),
            ChainEntry("/a", (1,), "a"),
            ChainEntry("/b", (2,), "b"),
        ]
        chain = build_chain(entries)

        assert chain["/a"].prev is None
        assert chain["/a"].next.uri == "/b"
        assert chain["/b"].prev.uri == "/a"
        assert chain["/c"].next is None

    def test_single_entry(self):
        """A lone entry has neither prev nor next."""
        chain = build_chain([ChainEntry("/a", (1,), "a")])
        assert chain["/a"].prev is None and chain["/a"].next is None

    def test_duplicate_uri(self):
        """URIs must be unique."""
        with pytest.raises(ValueError, match="unique"):
            build_chain([ChainEntry("/a", (1,), "a"), ChainEntry("/a", (2,), "a")])


class TestLinkResolver:
    """Tests for LinkResolver."""

    def test_patch_links(self):
        """A security patch gets release-month, cve-json and latest-sdk."""
        fact = nine_oh()[1]
        links = LinkResolver().resolve(
            ResourceKind.PATCH, patch_uri("9.0", "9.0.10"), fact,
            title="9.0.10", up=(major_uri("9.0"), ".NET 9.0"),
        )
        by_rel = {l.relation: l for l in links}

        assert by_rel["self"].href == "/9.0/9.0.10/index.json"
        assert by_rel["up"].href == "/9.0/index.json"
        assert by_rel["release-month"].href == "/timeline/2025/10/index.json"
        assert by_rel["cve-json"].href == "/timeline/2025/10/cve.json"
        assert by_rel["cve-json"].media_type == JSON_MEDIA_TYPE
        assert by_rel["latest-sdk"].href == "/9.0/sdk/9.0.306.json"

    def test_non_security_patch_has_no_cve_json(self):
        """Rules may omit their link."""
        fact = make_fact("9.0.11", date(2025, 11, 10))
        links = LinkResolver().resolve(ResourceKind.PATCH, patch_uri("9.0", "9.0.11"), fact)
        relations = [l.relation for l in links]
        assert "cve-json" not in relations
        assert "latest-sdk" not in relations

    def test_major_shortcuts(self):
        """latest and latest-security point at frozen patches."""
        subject = MajorSubject("9.0", tuple(nine_oh()))
        links = LinkResolver().resolve(ResourceKind.MAJOR, major_uri("9.0"), subject)
        by_rel = {l.relation: l for l in links}

        assert by_rel["latest"].href == "/9.0/9.0.11/index.json"
        assert by_rel["latest-security"].href == "/9.0/9.0.10/index.json"

    def test_chain_only_for_frozen(self):
        """Warm kinds cannot carry prev/next."""
        chain = build_chain([ChainEntry("/9.0/index.json", (1,), "9.0")])
        with pytest.raises(ValueError, match="frozen"):
            LinkResolver().resolve(
                ResourceKind.MAJOR, "/9.0/index.json", chain=chain["/9.0/index.json"]
            )

    def test_item_links(self):
        """Embedded items get self plus their collection's wormholes."""
        fact = nine_oh()[1]
        links = LinkResolver().resolve_item(
            ResourceKind.MONTH, "patches", patch_uri("9.0", "9.0.10"), fact, "9.0.10"
        )
        assert [l.relation for l in links] == ["self", "release-month", "cve-json"]
