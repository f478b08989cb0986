"""
Ticker record decoding.

Turns one raw ticker record from the feed into an OptionTick, applying
the mid implied-volatility policy. Records that cannot be decoded raise
MalformedRecordError; records with no usable IV raise NoQuoteError. The
ingestion worker drops both and moves on.
"""

import math
import sys
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from optboard.core.errors import MalformedRecordError, NoQuoteError
from optboard.core.models import ImpliedVolatility, OptionTick
from optboard.feed.instruments import parse_instrument_name

# 64-bit float machine epsilon: a side quoted below this is "no quote"
EPSILON = sys.float_info.epsilon


def mid_implied_volatility(bid_iv: Optional[float], ask_iv: Optional[float]) -> Optional[float]:
    """
    Mid IV from bid/ask IV quoted in percent.

    Args:
        bid_iv: Bid implied volatility in percent (None counts as no quote)
        ask_iv: Ask implied volatility in percent (None counts as no quote)

    Returns:
        Mid IV as a fraction, or None if neither side is quoted
    """
    bid = bid_iv or 0.0
    ask = ask_iv or 0.0

    if bid < EPSILON and ask < EPSILON:
        return None
    if ask < EPSILON:
        mid = bid
    elif bid < EPSILON:
        mid = ask
    else:
        mid = (bid + ask) / 2.0
    return mid / 100.0


def _number(record: Mapping[str, Any], field: str, required: bool = True) -> Optional[float]:
    value = record.get(field)
    if value is None:
        if required:
            raise MalformedRecordError(f"Missing field {field!r}", record)
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedRecordError(f"Field {field!r} is not numeric: {value!r}", record)
    if not math.isfinite(number):
        raise MalformedRecordError(f"Field {field!r} is not finite: {value!r}", record)
    return number


def tick_from_ticker(record: Mapping[str, Any]) -> OptionTick:
    """
    Build an OptionTick from a ticker record.

    Expected fields: instrument_name, bid_iv, ask_iv, underlying_price,
    open_interest, and optionally timestamp (epoch milliseconds).

    Args:
        record: Decoded ticker payload

    Returns:
        OptionTick carrying the mid IV

    Raises:
        NoQuoteError: If neither bid nor ask IV is quoted
        MalformedRecordError: If identity or price fields are missing or invalid
    """
    if not isinstance(record, Mapping):
        raise MalformedRecordError(f"Record is not a mapping: {type(record).__name__}", record)

    instrument = parse_instrument_name(record.get("instrument_name"))

    mid_iv = mid_implied_volatility(
        _number(record, "bid_iv", required=False),
        _number(record, "ask_iv", required=False),
    )
    if mid_iv is None:
        raise NoQuoteError(f"No IV quote for {record.get('instrument_name')}", record)

    asset_price = _number(record, "underlying_price")

    open_interest = _number(record, "open_interest", required=False)
    timestamp_ms = _number(record, "timestamp", required=False)
    timestamp = None
    if timestamp_ms is not None:
        try:
            timestamp = datetime.fromtimestamp(timestamp_ms / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise MalformedRecordError(f"Invalid timestamp {timestamp_ms}: {e}", record)

    try:
        return OptionTick(
            strike=instrument.strike,
            maturity=instrument.maturity,
            option_type=instrument.option_type,
            asset_price=asset_price,
            option_value=ImpliedVolatility(mid_iv),
            open_interest=int(open_interest) if open_interest is not None else None,
            timestamp=timestamp,
        )
    except ValueError as e:
        raise MalformedRecordError(str(e), record)
