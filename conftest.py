"""Pytest configuration for Paranoid Toolkit."""

import logging

import pytest

from paranoid_toolkit.config import set_config
from paranoid_toolkit.soft_delete import default_registry, listen


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Add custom markers
    config.addinivalue_line("markers", "cascade: mark test as cascade behaviour test")


@pytest.fixture(autouse=True)
def reset_config():
    """Every test starts from the default configuration."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def listener():
    """Register hook listeners that are removed again after the test."""
    registered = []

    def _listen(entity_type, event, fn):
        listen(entity_type, event, fn)
        registered.append((entity_type, event, fn))
        return fn

    yield _listen

    for entity_type, event, fn in registered:
        default_registry.require(entity_type).hooks.remove(event, fn)


@pytest.fixture
def transitions_log(caplog):
    """Capture INFO logs of the soft delete package."""
    caplog.set_level(logging.INFO, logger="paranoid_toolkit")
    return caplog
