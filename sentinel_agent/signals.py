"""Signal classifier combining EMA trend and RSI momentum."""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any, Sequence

from loguru import logger as default_logger

from sentinel_agent.indicators import IndicatorEngine
from sentinel_agent.models import (
    Candle,
    Crossover,
    IndicatorSnapshot,
    Signal,
    SignalKind,
    Trend,
    coerce_candles,
)

BASE_CONFIDENCE = 50
MAX_TREND_BONUS = 20.0
SWEET_SPOT_BONUS = 15
OFF_SPOT_BONUS = 5
CROSSOVER_BONUS = 15

BUY_SWEET_SPOT = (55.0, 65.0)
SELL_SWEET_SPOT = (35.0, 45.0)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class SignalClassifier:
    """Turns current/previous indicator values into a BUY/SELL/HOLD signal."""

    def __init__(
        self,
        buy_rsi_min: float = 50,
        overbought: float = 70,
        sell_rsi_max: float = 50,
        oversold: float = 30,
        logger=None,
    ) -> None:
        self.buy_rsi_min = buy_rsi_min
        self.overbought = overbought
        self.sell_rsi_max = sell_rsi_max
        self.oversold = oversold
        self.logger = logger or default_logger

    @staticmethod
    def trend(snapshot: IndicatorSnapshot) -> Trend:
        if snapshot.ema_fast > snapshot.ema_slow:
            return "BULLISH"
        if snapshot.ema_fast < snapshot.ema_slow:
            return "BEARISH"
        return "NEUTRAL"

    @staticmethod
    def crossover(current: IndicatorSnapshot, previous: IndicatorSnapshot | None) -> Crossover:
        if previous is None:
            return Crossover(bullish=False, bearish=False)
        bullish = previous.ema_fast <= previous.ema_slow and current.ema_fast > current.ema_slow
        bearish = previous.ema_fast >= previous.ema_slow and current.ema_fast < current.ema_slow
        return Crossover(bullish=bullish, bearish=bearish)

    def kind(self, current: IndicatorSnapshot) -> SignalKind:
        if current.ema_fast > current.ema_slow and self.buy_rsi_min < current.rsi < self.overbought:
            return "BUY"
        if current.ema_fast < current.ema_slow and self.oversold < current.rsi < self.sell_rsi_max:
            return "SELL"
        return "HOLD"

    def confidence(self, kind: SignalKind, current: IndicatorSnapshot, crossed: bool) -> int:
        """Score 0-100: base 50 plus trend-strength, RSI sweet-spot and crossover bonuses."""
        if kind == "HOLD":
            return 0

        score = float(BASE_CONFIDENCE)
        if current.ema_slow != 0:
            separation = abs(current.ema_fast - current.ema_slow) / current.ema_slow * 100
            score += min(separation * 10, MAX_TREND_BONUS)

        low, high = BUY_SWEET_SPOT if kind == "BUY" else SELL_SWEET_SPOT
        score += SWEET_SPOT_BONUS if low <= current.rsi <= high else OFF_SPOT_BONUS

        if crossed:
            score += CROSSOVER_BONUS

        return max(0, min(_round_half_up(score), 100))

    def classify(
        self,
        current: IndicatorSnapshot,
        previous: IndicatorSnapshot | None,
        latest_close: float,
        timestamp: str | None = None,
        candles_analyzed: int = 0,
    ) -> Signal:
        trend = self.trend(current)
        cross = self.crossover(current, previous)
        kind = self.kind(current)
        crossed = cross.bullish if kind == "BUY" else cross.bearish if kind == "SELL" else False

        return Signal(
            kind=kind,
            confidence=self.confidence(kind, current, crossed),
            indicators=IndicatorSnapshot(
                ema_fast=round(current.ema_fast, 6),
                ema_slow=round(current.ema_slow, 6),
                rsi=round(max(0.0, min(100.0, current.rsi)), 2),
            ),
            trend=trend,
            crossover=cross,
            current_price=float(latest_close),
            timestamp=timestamp or datetime.now(UTC).isoformat(),
            candles_analyzed=candles_analyzed,
        )


def analyze_market(
    candles: Sequence[Candle | dict[str, Any]],
    engine: IndicatorEngine | None = None,
    classifier: SignalClassifier | None = None,
) -> Signal:
    """Compute indicators over `candles` and classify the latest point."""
    engine = engine or IndicatorEngine()
    classifier = classifier or SignalClassifier()
    rows = coerce_candles(candles)

    series = engine.compute_series(rows)
    latest = rows[-1]
    signal = classifier.classify(
        series.current(),
        series.previous(),
        latest_close=latest.close,
        timestamp=latest.timestamp,
        candles_analyzed=len(rows),
    )
    if signal.is_actionable:
        classifier.logger.info(
            "Signal {} confidence={} trend={} price={}",
            signal.kind,
            signal.confidence,
            signal.trend,
            signal.current_price,
        )
    return signal
