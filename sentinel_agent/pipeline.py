"""Workflow entry point: candles in, signal plus trade setup out."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Sequence

from loguru import logger as default_logger

from sentinel_agent.config import AppConfig
from sentinel_agent.errors import SentinelError
from sentinel_agent.indicators import IndicatorEngine
from sentinel_agent.models import Candle, CandlePattern, RiskParameters, Signal, ValidationResult, coerce_candles
from sentinel_agent.patterns import detect_candle_patterns
from sentinel_agent.risk import RiskCalculator, RiskLimits, RiskValidator
from sentinel_agent.signals import SignalClassifier, analyze_market


@dataclass(slots=True)
class AnalysisResult:
    signal: Signal
    patterns: list[CandlePattern] = field(default_factory=list)
    risk: RiskParameters | None = None
    validation: ValidationResult | None = None
    min_confidence: int = 0

    @property
    def tradeable(self) -> bool:
        if self.risk is None or self.validation is None:
            return False
        return self.validation.valid and self.signal.confidence >= self.min_confidence


class SignalPipeline:
    """Wires indicator engine, classifier, risk calculator and validator from config."""

    def __init__(self, config: AppConfig | None = None, logger=None) -> None:
        self.config = config or AppConfig()
        self.logger = logger or default_logger
        strategy = self.config.strategy
        risk = self.config.risk
        self.engine = IndicatorEngine(
            fast_period=strategy.ema.fast,
            slow_period=strategy.ema.slow,
            rsi_period=strategy.rsi.period,
            logger=self.logger,
        )
        self.classifier = SignalClassifier(
            buy_rsi_min=strategy.rsi.buy_min,
            overbought=strategy.rsi.overbought,
            sell_rsi_max=strategy.rsi.sell_max,
            oversold=strategy.rsi.oversold,
            logger=self.logger,
        )
        self.calculator = RiskCalculator(
            stop_loss_buffer_percent=risk.stop_loss_buffer_percent,
            risk_reward_ratio=risk.risk_reward_ratio,
            leverage=self.config.mexc.leverage,
            logger=self.logger,
        )
        self.validator = RiskValidator(
            limits=RiskLimits(
                max_risk_percent=risk.max_risk_percent,
                min_rr_ratio=risk.min_rr_ratio,
                max_stop_loss_percent=risk.max_stop_loss_percent,
            ),
            account_size_usdt=risk.account_size_usdt,
        )

    def analyze(self, candles: Sequence[Candle], pattern_lookback: int = 3) -> AnalysisResult:
        signal = analyze_market(candles, engine=self.engine, classifier=self.classifier)
        result = AnalysisResult(
            signal=signal,
            patterns=detect_candle_patterns(candles, pattern_lookback),
            min_confidence=self.config.strategy.min_confidence,
        )
        if not signal.is_actionable:
            return result

        result.risk = self.calculator.derive_risk(
            signal, candles, position_size_usdt=self.config.trading.position_size_usdt
        )
        result.validation = self.validator.validate(result.risk)
        if not result.validation.valid:
            self.logger.info("Risk validation rejected {}: {}", signal.kind, "; ".join(result.validation.reasons))
        return result


def run_pipeline(candles: Sequence[Candle | dict[str, Any]], config: AppConfig | None = None) -> AnalysisResult:
    return SignalPipeline(config).analyze(coerce_candles(candles))


def _extract_candles(payload: Any) -> Any:
    if isinstance(payload, dict):
        for key in ("candles", "klines"):
            if key in payload:
                return payload[key]
        return None
    return payload


def _error(message: str) -> dict[str, Any]:
    return {"success": False, "error": message, "timestamp": datetime.now(UTC).isoformat()}


def to_payload(result: AnalysisResult, candles: Sequence[Candle]) -> dict[str, Any]:
    signal = result.signal
    risk = result.risk
    trade_params = None
    if risk is not None:
        trade_params = {k: v for k, v in risk.to_dict().items() if k != "signal"}
    return {
        "success": True,
        **signal.to_dict(),
        "tradeable": result.tradeable,
        "patterns": [p.to_dict() for p in result.patterns],
        "tradeParams": trade_params,
        "riskValidation": result.validation.to_dict() if result.validation else None,
        "marketContext": {
            "trend": signal.trend,
            "rsi": signal.indicators.rsi,
            "ema9": signal.indicators.ema_fast,
            "ema21": signal.indicators.ema_slow,
            "candlePatterns": ", ".join(p.type for p in result.patterns) or "None detected",
            "signal": signal.kind,
            "confidence": signal.confidence,
        },
        "analysis": {
            "candlesAnalyzed": len(candles),
            "latestCandleTime": candles[-1].timestamp,
            "analysisTime": datetime.now(UTC).isoformat(),
        },
    }


def process_payload(payload: Any, config: AppConfig | None = None, logger=None) -> dict[str, Any]:
    """Run the pipeline on a workflow payload and report errors instead of raising."""
    logger = logger or default_logger
    raw = _extract_candles(payload)
    if not isinstance(raw, list) or not raw:
        return _error("No candles data provided")

    try:
        candles = coerce_candles(raw)
        result = SignalPipeline(config, logger=logger).analyze(candles)
    except (SentinelError, ValueError) as exc:
        logger.error("Pipeline failed: {}", exc)
        return _error(str(exc))
    return to_payload(result, candles)
