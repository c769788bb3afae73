"""Pytest configuration and fixtures for config package tests."""

import pytest

from treeknobs_config import (
    BaseHierarchicalConfiguration,
    InMemoryNodeModel,
    node_from_dict,
)


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary with repeated and attributed nodes."""
    return {
        "tables": {
            "table": [
                {
                    "@type": "system",
                    "name": "users",
                    "fields": {"field": [{"name": "uid"}, {"name": "uname"}]},
                },
                {
                    "name": "documents",
                    "fields": {"field": [{"name": "docid"}, {"name": "author"}]},
                },
            ]
        },
        "database": {
            "host": "localhost",
            "port": 5432,
        },
    }


@pytest.fixture
def sample_root(sample_config_dict):
    """Root node built from the sample dictionary."""
    return node_from_dict(sample_config_dict)


@pytest.fixture
def model(sample_root):
    """In-memory node model on the sample tree."""
    return InMemoryNodeModel(sample_root)


@pytest.fixture
def config(sample_config_dict):
    """Configuration on the sample tree."""
    return BaseHierarchicalConfiguration.from_dict(sample_config_dict)


@pytest.fixture
def env_vars(monkeypatch):
    """Helper to set environment variables."""

    def _set_env(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key, str(value))

    return _set_env
