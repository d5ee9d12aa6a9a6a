"""Basic candlestick pattern detection."""

from __future__ import annotations

from typing import Any, Sequence

from sentinel_agent.models import Candle, CandlePattern, coerce_candles


def detect_candle_patterns(candles: Sequence[Candle | dict[str, Any]], lookback: int = 3) -> list[CandlePattern]:
    """Scan the last `lookback` candles; `index` is relative to that window."""
    if lookback <= 0:
        return []

    patterns: list[CandlePattern] = []
    for index, candle in enumerate(coerce_candles(candles)[-lookback:]):
        body = abs(candle.close - candle.open)
        price_range = candle.high - candle.low
        lower_wick = min(candle.open, candle.close) - candle.low
        upper_wick = candle.high - max(candle.open, candle.close)

        if price_range > 0 and body / price_range < 0.1:
            patterns.append(CandlePattern("DOJI", "MEDIUM", index))

        if lower_wick > body * 2 and upper_wick < body * 0.3:
            kind = "HAMMER" if candle.close > candle.open else "HANGING_MAN"
            patterns.append(CandlePattern(kind, "HIGH", index))

        if upper_wick > body * 2 and lower_wick < body * 0.3:
            patterns.append(CandlePattern("SHOOTING_STAR", "HIGH", index))

    return patterns
