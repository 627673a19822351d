"""Shared fixtures for procpool tests."""

# Standard library imports
import logging
from dataclasses import fields

# Third-party imports
import pytest

# Local/package imports
from procpool.config import PoolConfig, clear_config
from procpool.logging import LOGGER_NAME


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep PROCPOOL_* variables, cached config and log handlers per test."""
    for f in fields(PoolConfig):
        monkeypatch.delenv(f"PROCPOOL_{f.name.upper()}", raising=False)
    clear_config()
    yield
    clear_config()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_procpool_handler", False):
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def pool_options():
    """Pool options with a short idle wait to keep tests fast."""
    return {"PollInterval": 0.01}
