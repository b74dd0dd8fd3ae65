"""
Pytest configuration for the Intcode test suite.

    python -m pytest                 # full suite
    python -m pytest -m "not slow"   # skip the self-hosting programs
"""

import logging

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "slow: larger programs (self-hosting, big arithmetic) that take longer")


@pytest.fixture(autouse=True)
def _quiet_engine_trace(caplog):
    """Keep the per-instruction DEBUG trace out of captured logs."""
    caplog.set_level(logging.INFO, logger="intcode")
    yield
