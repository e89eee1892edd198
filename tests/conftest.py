"""Shared fixtures for unit and integration tests."""

import pytest

from releases.relgraph.config import BuildConfig, PublishConfig
from releases.relgraph.graph.builder import GraphBuilder
from tests.factories import eight_oh, fact_set, nine_oh


@pytest.fixture
def scenario_facts():
    """The three 9.0 patches only."""
    return fact_set(*nine_oh())


@pytest.fixture
def facts():
    """9.0 and 8.0 histories with CVE records."""
    return fact_set(*nine_oh(), *eight_oh())


@pytest.fixture
def builder():
    return GraphBuilder(BuildConfig(max_workers=2))


@pytest.fixture
def strict_builder():
    """Builder that aborts the whole build on a frozen mutation."""
    return GraphBuilder(BuildConfig(max_workers=2, on_frozen_mutation="raise"))


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "site"


@pytest.fixture
def publish_config(output_dir):
    return PublishConfig(output_dir=str(output_dir), keep_builds=2)
