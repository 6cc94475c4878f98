"""Shared fixtures for the sampler tests."""

import os

import pytest

from rank_sampler.config import Config


@pytest.fixture(autouse=True)
def clean_sampler_env():
    """Drop RANK_SAMPLER_* variables that a test (or a loaded .env) leaves behind."""
    before = {key: value for key, value in os.environ.items() if key.startswith("RANK_SAMPLER_")}
    for key in before:
        del os.environ[key]
    yield
    for key in [key for key in os.environ if key.startswith("RANK_SAMPLER_")]:
        del os.environ[key]
    os.environ.update(before)


@pytest.fixture
def discovery_config():
    """Discovery+age profile with a single rank category."""
    return Config(
        mode="discovery",
        sample_distance_sec=60,
        max_age_hours=48,
        max_rank=2,
        discovery_category="new",
        rank_categories=["new"],
    )


@pytest.fixture
def snapshot_config():
    """Snapshot profile ranking two categories."""
    return Config(
        mode="snapshot",
        sample_distance_sec=60,
        max_rank=3,
        rank_categories=["top", "best"],
    )
