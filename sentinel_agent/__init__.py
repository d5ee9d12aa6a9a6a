"""EMA/RSI signal generation and dynamic risk sizing for MEXC futures."""

__version__ = "0.1.0"
