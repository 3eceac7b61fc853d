"""
VDFlow — Domain Exceptions
"""

from __future__ import annotations


class VDFError(Exception):
    """Base class for VDFlow errors."""


class DataUnavailableError(VDFError):
    """Market data could not be retrieved after retries."""

    def __init__(self, ticker: str, reason: str):
        super().__init__(f"Market data unavailable for {ticker}: {reason}")
        self.ticker = ticker
        self.reason = reason


class DataProviderNotConfigured(DataUnavailableError):
    """No API key configured for the market data provider."""

    def __init__(self, ticker: str):
        super().__init__(ticker, "provider API key not configured")
