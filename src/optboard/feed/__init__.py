"""
Market data feed: record decoding and feed implementations.
"""

from optboard.feed.base import IterableFeed, MarketDataFeed, ReplayFeed
from optboard.feed.instruments import Instrument, parse_instrument_name
from optboard.feed.quotes import EPSILON, mid_implied_volatility, tick_from_ticker

__all__ = [
    "MarketDataFeed",
    "IterableFeed",
    "ReplayFeed",
    "Instrument",
    "parse_instrument_name",
    "EPSILON",
    "mid_implied_volatility",
    "tick_from_ticker",
]
