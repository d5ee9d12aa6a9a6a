"""Domain models shared by the indicator, signal and risk layers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Mapping

from sentinel_agent.errors import InvalidCandleError

SignalKind = Literal["BUY", "SELL", "HOLD"]
Trend = Literal["BULLISH", "BEARISH", "NEUTRAL"]
Side = Literal["LONG", "SHORT"]


def _price(raw: Mapping[str, Any], key: str) -> float:
    value = raw.get(key)
    if value is None:
        raise InvalidCandleError(f"Candle is missing '{key}'")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidCandleError(f"Candle '{key}' is not a number: {value!r}") from exc
    if not math.isfinite(number) or number <= 0:
        raise InvalidCandleError(f"Candle '{key}' must be a positive finite number, got {value!r}")
    return number


def _timestamp(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value) / 1000, UTC).isoformat()
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidCandleError(f"Candle timestamp out of range: {value!r}") from exc
    return str(value)


@dataclass(slots=True, frozen=True)
class Candle:
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    timestamp: str | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Candle":
        if not isinstance(raw, Mapping):
            raise InvalidCandleError(f"Candle must be a mapping, got {type(raw).__name__}")
        try:
            volume = float(raw.get("volume") or 0.0)
        except (TypeError, ValueError) as exc:
            raise InvalidCandleError(f"Candle 'volume' is not a number: {raw.get('volume')!r}") from exc
        timestamp = raw.get("timestamp")
        if timestamp is None:
            timestamp = raw.get("timestampMs")
        return cls(
            open=_price(raw, "open"),
            high=_price(raw, "high"),
            low=_price(raw, "low"),
            close=_price(raw, "close"),
            volume=volume,
            timestamp=_timestamp(timestamp),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "timestamp": self.timestamp,
        }


def coerce_candles(candles: Any) -> list[Candle]:
    """Accept Candle objects or plain dicts, oldest first."""
    if candles is None:
        return []
    return [c if isinstance(c, Candle) else Candle.from_dict(c) for c in candles]


@dataclass(slots=True, frozen=True)
class IndicatorSnapshot:
    ema_fast: float
    ema_slow: float
    rsi: float


@dataclass(slots=True)
class IndicatorSeries:
    """Full indicator series aligned on their last element."""

    ema_fast: list[float]
    ema_slow: list[float]
    rsi: list[float]

    def current(self) -> IndicatorSnapshot:
        return IndicatorSnapshot(self.ema_fast[-1], self.ema_slow[-1], self.rsi[-1])

    def previous(self) -> IndicatorSnapshot | None:
        if min(len(self.ema_fast), len(self.ema_slow)) < 2:
            return None
        # crossover reads the EMAs only; a short RSI series repeats its last value
        rsi = self.rsi[-2] if len(self.rsi) >= 2 else self.rsi[-1]
        return IndicatorSnapshot(self.ema_fast[-2], self.ema_slow[-2], rsi)


@dataclass(slots=True, frozen=True)
class Crossover:
    bullish: bool = False
    bearish: bool = False


@dataclass(slots=True)
class Signal:
    kind: SignalKind
    confidence: int
    indicators: IndicatorSnapshot
    trend: Trend
    crossover: Crossover
    current_price: float
    timestamp: str
    candles_analyzed: int = 0

    @property
    def is_actionable(self) -> bool:
        return self.kind != "HOLD"

    def to_dict(self) -> dict[str, Any]:
        return {
            "signal": self.kind,
            "confidence": self.confidence,
            "indicators": {
                "ema9": self.indicators.ema_fast,
                "ema21": self.indicators.ema_slow,
                "rsi": self.indicators.rsi,
            },
            "trend": self.trend,
            "crossover": {"bullish": self.crossover.bullish, "bearish": self.crossover.bearish},
            "currentPrice": self.current_price,
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class RiskParameters:
    signal: SignalKind
    side: Side | None
    entry: float
    stop_loss: float | None
    take_profit: float | None
    quantity: float
    position_size_usdt: float
    risk_reward_ratio: float
    risk_amount: float
    potential_profit: float
    stop_loss_percent: float = 0.0
    take_profit_percent: float = 0.0
    leverage: int = 1
    notional_value: float = 0.0
    margin_required: float = 0.0

    @property
    def is_actionable(self) -> bool:
        return self.side is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "signal": self.signal,
            "side": self.side,
            "entry": self.entry,
            "stopLoss": self.stop_loss,
            "takeProfit": self.take_profit,
            "quantity": self.quantity,
            "positionSizeUSDT": self.position_size_usdt,
            "riskRewardRatio": self.risk_reward_ratio,
            "riskAmount": self.risk_amount,
            "potentialProfit": self.potential_profit,
            "stopLossPercent": self.stop_loss_percent,
            "takeProfitPercent": self.take_profit_percent,
            "leverage": self.leverage,
            "notionalValue": self.notional_value,
            "marginRequired": self.margin_required,
        }


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    reasons: list[str] = field(default_factory=list)
    risk_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "reasons": list(self.reasons), "riskPercent": self.risk_percent}


@dataclass(slots=True, frozen=True)
class CandlePattern:
    type: str
    strength: str
    index: int

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "strength": self.strength, "index": self.index}
