"""Shared pytest fixtures for optboard tests."""

import sys
from pathlib import Path

import pytest
from loguru import logger

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Import all fixtures for global availability
from tests.fixtures.board_fixtures import *


@pytest.fixture
def loguru_messages():
    """
    Capture loguru output for assertions.

    Returns:
        list[str]: Formatted messages, appended as they are logged

    Example:
        def test_warns(loguru_messages):
            do_something()
            assert any("dropped" in m for m in loguru_messages)
    """
    messages = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)
