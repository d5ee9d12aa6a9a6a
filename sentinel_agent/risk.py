"""Dynamic stop-loss/take-profit derivation and risk limit validation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence

from loguru import logger as default_logger

from sentinel_agent.errors import InsufficientDataError, InvalidEntryError
from sentinel_agent.models import Candle, RiskParameters, Signal, ValidationResult, coerce_candles

PRICE_DECIMALS = 6
USDT_DECIMALS = 2
QTY_DECIMALS = 4
RATIO_DECIMALS = 2


def _is_positive(value: float | None) -> bool:
    return value is not None and math.isfinite(value) and value > 0


class RiskCalculator:
    """Derives entry/stop/target/size from a signal and recent candle extremes."""

    def __init__(
        self,
        stop_loss_buffer_percent: float = 0.5,
        risk_reward_ratio: float = 2.0,
        lookback: int = 5,
        leverage: int = 1,
        logger=None,
    ) -> None:
        if risk_reward_ratio <= 0:
            raise ValueError("risk_reward_ratio must be > 0")
        if lookback < 1:
            raise ValueError("lookback must be >= 1")
        self.buffer = stop_loss_buffer_percent / 100
        self.risk_reward_ratio = risk_reward_ratio
        self.lookback = lookback
        self.leverage = max(1, int(leverage))
        self.logger = logger or default_logger

    def resolve_entry(self, signal: Signal, entry_override: float | None) -> float:
        if entry_override is not None and math.isfinite(entry_override) and entry_override > 0:
            return float(entry_override)
        entry = signal.current_price
        if not _is_positive(entry):
            raise InvalidEntryError(f"Invalid entry price: {entry!r}")
        return float(entry)

    def hold(self, signal: Signal, entry: float) -> RiskParameters:
        return RiskParameters(
            signal=signal.kind,
            side=None,
            entry=round(entry, PRICE_DECIMALS),
            stop_loss=None,
            take_profit=None,
            quantity=0.0,
            position_size_usdt=0.0,
            risk_reward_ratio=0.0,
            risk_amount=0.0,
            potential_profit=0.0,
            leverage=self.leverage,
        )

    def derive_risk(
        self,
        signal: Signal,
        candles: Sequence[Candle | dict[str, Any]],
        entry_override: float | None = None,
        position_size_usdt: float = 100.0,
    ) -> RiskParameters:
        rows = coerce_candles(candles)
        if len(rows) < self.lookback:
            raise InsufficientDataError(
                f"Invalid signal or insufficient candle data (need at least {self.lookback} candles, got {len(rows)})"
            )
        entry = self.resolve_entry(signal, entry_override)

        if signal.kind == "HOLD":
            return self.hold(signal, entry)
        if not _is_positive(position_size_usdt):
            raise ValueError(f"position_size_usdt must be > 0, got {position_size_usdt!r}")

        window = rows[-self.lookback:]
        if signal.kind == "BUY":
            side = "LONG"
            stop_loss = min(c.low for c in window) * (1 - self.buffer)
            risk_distance = entry - stop_loss
            take_profit = entry + risk_distance * self.risk_reward_ratio
        else:
            side = "SHORT"
            stop_loss = max(c.high for c in window) * (1 + self.buffer)
            risk_distance = stop_loss - entry
            take_profit = entry - risk_distance * self.risk_reward_ratio

        if risk_distance <= 0:
            raise InvalidEntryError(
                f"Entry {entry} is beyond the {side} stop-loss {stop_loss:.6f}; no risk distance to trade"
            )

        quantity = position_size_usdt / entry
        risk_per_unit = abs(entry - stop_loss)
        profit_per_unit = abs(take_profit - entry)

        params = RiskParameters(
            signal=signal.kind,
            side=side,
            entry=round(entry, PRICE_DECIMALS),
            stop_loss=round(stop_loss, PRICE_DECIMALS),
            take_profit=round(take_profit, PRICE_DECIMALS),
            quantity=round(quantity, QTY_DECIMALS),
            position_size_usdt=round(position_size_usdt, USDT_DECIMALS),
            risk_reward_ratio=round(profit_per_unit / risk_per_unit, RATIO_DECIMALS),
            risk_amount=round(risk_per_unit * quantity, USDT_DECIMALS),
            potential_profit=round(profit_per_unit * quantity, USDT_DECIMALS),
            stop_loss_percent=round(risk_per_unit / entry * 100, RATIO_DECIMALS),
            take_profit_percent=round(profit_per_unit / entry * 100, RATIO_DECIMALS),
            leverage=self.leverage,
            notional_value=round(position_size_usdt * self.leverage, USDT_DECIMALS),
            margin_required=round(position_size_usdt, USDT_DECIMALS),
        )
        self.logger.debug(
            "Risk derived side={} entry={} sl={} tp={} qty={}",
            params.side,
            params.entry,
            params.stop_loss,
            params.take_profit,
            params.quantity,
        )
        return params


def calculate_position_size(
    account_balance: float,
    risk_percent: float,
    entry_price: float,
    stop_loss_price: float,
) -> dict[str, float]:
    """Size a position so that hitting the stop loses `risk_percent` of the balance."""
    if not _is_positive(entry_price):
        raise InvalidEntryError(f"Invalid entry price: {entry_price!r}")
    risk_per_unit = abs(entry_price - stop_loss_price)
    if risk_per_unit == 0:
        raise InvalidEntryError("Entry price equals stop-loss price")

    risk_amount = account_balance * risk_percent / 100
    quantity = risk_amount / risk_per_unit
    return {
        "quantity": round(quantity, QTY_DECIMALS),
        "position_size": round(quantity * entry_price, USDT_DECIMALS),
        "risk_amount": round(risk_amount, USDT_DECIMALS),
        "risk_per_unit": round(risk_per_unit, PRICE_DECIMALS),
    }


@dataclass(slots=True, frozen=True)
class RiskLimits:
    max_risk_percent: float = 2.0
    min_rr_ratio: float = 1.5
    max_stop_loss_percent: float = 5.0


class RiskValidator:
    """Checks derived risk parameters against configurable limits."""

    def __init__(self, limits: RiskLimits | None = None, account_size_usdt: float = 5000.0) -> None:
        if not _is_positive(account_size_usdt):
            raise ValueError("account_size_usdt must be > 0")
        self.limits = limits or RiskLimits()
        self.account_size_usdt = account_size_usdt

    def validate(self, params: RiskParameters, limits: RiskLimits | None = None) -> ValidationResult:
        limits = limits or self.limits
        reasons: list[str] = []

        if params.risk_reward_ratio < limits.min_rr_ratio:
            reasons.append(
                f"Risk/Reward ratio {params.risk_reward_ratio} is below minimum {limits.min_rr_ratio}"
            )

        if params.stop_loss_percent > limits.max_stop_loss_percent:
            reasons.append(
                f"Stop loss distance {params.stop_loss_percent}% exceeds maximum {limits.max_stop_loss_percent}%"
            )

        risk_percent = params.risk_amount / self.account_size_usdt * 100
        if risk_percent > limits.max_risk_percent:
            reasons.append(f"Risk {risk_percent:.2f}% exceeds maximum {limits.max_risk_percent}% of account")

        valid = not reasons
        return ValidationResult(
            valid=valid,
            reasons=reasons if reasons else ["All risk parameters within acceptable limits"],
            risk_percent=round(risk_percent, 2),
        )
