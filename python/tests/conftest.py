"""
Pytest configuration and fixtures for mdviewer tests.

Specialized fixtures are organized in the fixtures/ directory:
- fixtures.remote: Scripted connections, recording notifier, targets
- fixtures.watcher: Local and remote watcher fixtures
"""

import logging

import pytest

# Load fixture modules
pytest_plugins = [
    "tests.fixtures.remote",
    "tests.fixtures.watcher",
]


@pytest.fixture
def clean_mdviewer_logger():
    """Remove handlers added to the "mdviewer" logger during a test."""
    logger = logging.getLogger("mdviewer")
    before = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
