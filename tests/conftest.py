"""Shared pytest fixtures."""

import pytest
from loguru import logger


@pytest.fixture(autouse=True)
def _reset_loguru():
    # CLI entry points add a stderr sink bound to the captured stream
    yield
    logger.remove()
