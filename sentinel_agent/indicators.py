"""EMA and RSI computation over closing prices."""

from __future__ import annotations

from typing import Sequence

from loguru import logger as default_logger

from sentinel_agent.errors import InsufficientDataError
from sentinel_agent.models import Candle, IndicatorSeries, IndicatorSnapshot


def ema(values: Sequence[float], period: int) -> list[float]:
    """Exponential moving average seeded with the SMA of the first `period` values.

    Returns ``len(values) - period + 1`` points, or an empty list when there is
    not enough data.
    """
    if period < 1:
        raise ValueError("period must be >= 1")
    if len(values) < period:
        return []

    k = 2.0 / (period + 1)
    current = sum(values[:period]) / period
    result = [current]
    for value in values[period:]:
        # same as current * (1 - k) + value * k, exact on flat input
        current += (value - current) * k
        result.append(current)
    return result


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    """Zero average loss gives 100, except a window with no movement at all, which is 50."""
    if avg_loss == 0:
        # flat window: no momentum either way
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return max(0.0, min(100.0, 100.0 - 100.0 / (1.0 + rs)))


def rsi(values: Sequence[float], period: int = 14) -> list[float]:
    """Relative strength index with Wilder smoothing.

    Returns ``len(values) - period`` points, each within [0, 100].
    """
    if period < 1:
        raise ValueError("period must be >= 1")
    if len(values) <= period:
        return []

    gains: list[float] = []
    losses: list[float] = []
    for prev, curr in zip(values, values[1:]):
        change = curr - prev
        gains.append(max(change, 0.0))
        losses.append(max(-change, 0.0))

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    result = [_rsi_value(avg_gain, avg_loss)]
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        result.append(_rsi_value(avg_gain, avg_loss))
    return result


class IndicatorEngine:
    """Computes fast/slow EMA and RSI series from a candle sequence."""

    def __init__(
        self,
        fast_period: int = 9,
        slow_period: int = 21,
        rsi_period: int = 14,
        logger=None,
    ) -> None:
        if fast_period >= slow_period:
            raise ValueError("fast_period must be lower than slow_period")
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.rsi_period = rsi_period
        self.logger = logger or default_logger

    @property
    def min_candles(self) -> int:
        return max(self.slow_period, self.rsi_period + 1)

    def compute_series(self, candles: Sequence[Candle]) -> IndicatorSeries:
        if candles is None or len(candles) < self.min_candles:
            count = 0 if candles is None else len(candles)
            raise InsufficientDataError(
                f"Insufficient candle data: got {count}, need at least {self.min_candles} "
                f"candles for EMA({self.slow_period}) and RSI({self.rsi_period})."
            )

        closes = [float(c.close) for c in candles]
        series = IndicatorSeries(
            ema_fast=ema(closes, self.fast_period),
            ema_slow=ema(closes, self.slow_period),
            rsi=rsi(closes, self.rsi_period),
        )
        self.logger.debug(
            "Indicators computed candles={} ema_fast={} ema_slow={} rsi={}",
            len(candles),
            series.ema_fast[-1],
            series.ema_slow[-1],
            series.rsi[-1],
        )
        return series

    def compute(self, candles: Sequence[Candle]) -> IndicatorSnapshot:
        return self.compute_series(candles).current()
