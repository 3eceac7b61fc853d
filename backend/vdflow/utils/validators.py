"""
VDFlow — Input Validators

Raise ValueError on invalid input so callers can map to 422 responses.
"""

from __future__ import annotations

import re

# 1-5 letters, optional .class suffix (BRK.B); digits allowed for some ADRs/ETFs
_TICKER_RE = re.compile(r"^[A-Z][A-Z0-9]{0,5}(\.[A-Z]{1,2})?$")


def validate_ticker(raw: str) -> str:
    """Clean and validate a ticker symbol.

    >>> validate_ticker(' cohr ')
    'COHR'
    >>> validate_ticker('BRK.B')
    'BRK.B'
    """
    ticker = raw.strip().upper()
    if not ticker:
        raise ValueError("Ticker cannot be empty")
    if not _TICKER_RE.match(ticker):
        raise ValueError(
            f"Invalid ticker '{ticker}'. Expected letters/digits starting with a letter, "
            f"optionally followed by a class suffix (e.g. BRK.B)"
        )
    return ticker
