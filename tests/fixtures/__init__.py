"""Test fixtures for optboard tests.

This package provides reusable test fixtures for:
- Option ticks and chains
- Raw ticker records in the exchange wire shape

Fixtures are auto-discovered by pytest through conftest.py.
"""

from tests.fixtures.board_fixtures import (
    live_records,
    make_tick,
    sample_chain,
)

__all__ = [
    "make_tick",
    "sample_chain",
    "live_records",
]
