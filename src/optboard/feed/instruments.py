"""
Instrument name parsing.

Exchange option names have the form <CURRENCY>-<DDMMMYY>-<STRIKE>-<C|P>,
e.g. BTC-10MAR23-22500-C. Options settle at 08:00 UTC on the expiry date.
"""

from datetime import datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

from optboard.core.errors import MalformedRecordError
from optboard.core.models import OptionType

SETTLEMENT_TIME = time(8, 0, tzinfo=timezone.utc)

_MONTHS = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

_RIGHTS = {"C": OptionType.CALL, "P": OptionType.PUT}


class Instrument(NamedTuple):
    """Identity fields decoded from an instrument name."""
    currency: str
    maturity: datetime
    strike: Decimal
    option_type: OptionType


def parse_expiry(code: str) -> datetime:
    """
    Parse an expiry code (10MAR23, 7APR23) into the settlement instant.

    Args:
        code: Day (1-2 digits), month abbreviation, 2-digit year

    Returns:
        Timezone-aware UTC datetime at 08:00

    Raises:
        MalformedRecordError: If the code is not a valid date
    """
    code = code.upper()
    if len(code) not in (6, 7):
        raise MalformedRecordError(f"Invalid expiry code: {code!r}")
    day, month, year = code[:-5], code[-5:-2], code[-2:]
    if not (day.isdigit() and year.isdigit()) or month not in _MONTHS:
        raise MalformedRecordError(f"Invalid expiry code: {code!r}")
    try:
        expiry = datetime(2000 + int(year), _MONTHS[month], int(day))
    except ValueError:
        raise MalformedRecordError(f"Invalid expiry date: {code!r}")
    return datetime.combine(expiry.date(), SETTLEMENT_TIME)


def parse_instrument_name(name: str) -> Instrument:
    """
    Parse an option instrument name.

    Args:
        name: e.g. "BTC-10MAR23-22500-C"

    Returns:
        Instrument with currency, maturity, strike and option type

    Raises:
        MalformedRecordError: If the name is not an option instrument
    """
    parts = name.split("-") if isinstance(name, str) else []
    if len(parts) != 4:
        raise MalformedRecordError(f"Not an option instrument name: {name!r}")

    currency, expiry_code, strike_text, right = parts

    option_type = _RIGHTS.get(right.upper())
    if option_type is None:
        raise MalformedRecordError(f"Unknown option right {right!r} in {name!r}")

    # Fractional strikes use 'd' as decimal separator on some venues (e.g. 0d625)
    try:
        strike = Decimal(strike_text.replace("d", "."))
    except InvalidOperation:
        raise MalformedRecordError(f"Invalid strike {strike_text!r} in {name!r}")
    if not strike.is_finite() or strike <= 0:
        raise MalformedRecordError(f"Invalid strike {strike_text!r} in {name!r}")

    return Instrument(
        currency=currency.upper(),
        maturity=parse_expiry(expiry_code),
        strike=strike,
        option_type=option_type,
    )
