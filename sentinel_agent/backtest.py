"""Replay the signal pipeline over historical candles."""

from __future__ import annotations

import json
import random
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Sequence

from loguru import logger as default_logger

from sentinel_agent.config import AppConfig
from sentinel_agent.errors import SentinelError
from sentinel_agent.models import Candle, RiskParameters, Signal, coerce_candles
from sentinel_agent.pipeline import SignalPipeline


@dataclass(slots=True)
class OpenPosition:
    signal: str
    entry: float
    stop_loss: float
    take_profit: float
    quantity: float
    position_size: float
    entry_index: int
    entry_time: str | None
    cost: float


@dataclass(slots=True)
class TradeRecord:
    signal: str
    entry: float
    exit: float
    stop_loss: float
    take_profit: float
    quantity: float
    entry_index: int
    exit_index: int
    entry_time: str | None
    exit_time: str | None
    reason: str
    pnl: float
    pnl_percent: float
    duration: int


@dataclass(slots=True)
class BacktestStats:
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    breakeven: int = 0
    total_profit: float = 0.0
    total_loss: float = 0.0
    max_drawdown: float = 0.0
    peak_balance: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    @property
    def win_rate(self) -> float:
        return self.wins / self.total_trades * 100 if self.total_trades else 0.0

    @property
    def profit_factor(self) -> float:
        return self.total_profit / self.total_loss if self.total_loss > 0 else 0.0


@dataclass(slots=True)
class BacktestReport:
    initial_balance: float
    final_balance: float
    stats: BacktestStats
    trades: list[TradeRecord] = field(default_factory=list)

    @property
    def net_profit(self) -> float:
        return self.final_balance - self.initial_balance

    def to_dict(self) -> dict[str, Any]:
        return {
            "initialBalance": self.initial_balance,
            "finalBalance": round(self.final_balance, 2),
            "netProfit": round(self.net_profit, 2),
            "stats": {**asdict(self.stats), "win_rate": round(self.stats.win_rate, 2)},
            "trades": [asdict(t) for t in self.trades],
            "timestamp": datetime.now(UTC).isoformat(),
        }


class Backtester:
    """Single-position backtest; one instance per session, state is not shared."""

    def __init__(self, config: AppConfig | None = None, logger=None) -> None:
        self.config = config or AppConfig()
        self.logger = logger or default_logger
        self.pipeline = SignalPipeline(self.config, logger=self.logger)
        self.position_size = self.config.trading.position_size_usdt
        self._reset()

    def _reset(self) -> None:
        settings = self.config.backtest
        self.balance = settings.initial_balance
        self.stats = BacktestStats(peak_balance=settings.initial_balance)
        self.trades: list[TradeRecord] = []
        self.open_position: OpenPosition | None = None

    def _fee(self, percent: float) -> float:
        return self.position_size * percent / 100

    def open_trade(self, signal: Signal, risk: RiskParameters, index: int) -> None:
        cost = self._fee(self.config.backtest.commission_percent) + self._fee(self.config.backtest.slippage_percent)
        self.open_position = OpenPosition(
            signal=signal.kind,
            entry=risk.entry,
            stop_loss=float(risk.stop_loss),
            take_profit=float(risk.take_profit),
            quantity=risk.quantity,
            position_size=self.position_size,
            entry_index=index,
            entry_time=signal.timestamp,
            cost=cost,
        )
        self.balance -= cost
        self.logger.info(
            "OPEN {}: entry={} sl={} tp={}", signal.kind, risk.entry, risk.stop_loss, risk.take_profit
        )

    def check_exit(self, candle: Candle, index: int) -> bool:
        position = self.open_position
        if position is None:
            return False

        close_price: float | None = None
        reason = ""
        if position.signal == "BUY" and candle.low <= position.stop_loss:
            close_price, reason = position.stop_loss, "STOP_LOSS"
        elif position.signal == "SELL" and candle.high >= position.stop_loss:
            close_price, reason = position.stop_loss, "STOP_LOSS"

        # both touched within one candle: the target wins
        if position.signal == "BUY" and candle.high >= position.take_profit:
            close_price, reason = position.take_profit, "TAKE_PROFIT"
        elif position.signal == "SELL" and candle.low <= position.take_profit:
            close_price, reason = position.take_profit, "TAKE_PROFIT"

        if close_price is None:
            return False
        self.close_trade(close_price, reason, candle, index)
        return True

    def close_trade(self, exit_price: float, reason: str, candle: Candle, index: int) -> TradeRecord:
        position = self.open_position
        if position is None:
            raise RuntimeError("No open position to close")

        if position.signal == "BUY":
            pnl = (exit_price - position.entry) * position.quantity
        else:
            pnl = (position.entry - exit_price) * position.quantity
        pnl -= self._fee(self.config.backtest.commission_percent)

        # margin was never deducted, so only the P&L moves the balance
        self.balance += pnl
        trade = TradeRecord(
            signal=position.signal,
            entry=position.entry,
            exit=exit_price,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            quantity=position.quantity,
            entry_index=position.entry_index,
            exit_index=index,
            entry_time=position.entry_time,
            exit_time=candle.timestamp,
            reason=reason,
            pnl=round(pnl, 2),
            pnl_percent=round(pnl / position.position_size * 100, 2),
            duration=index - position.entry_index,
        )
        self.trades.append(trade)
        self._record(pnl)
        self.logger.info("CLOSE {}: exit={} pnl={:.2f} balance={:.2f}", reason, exit_price, pnl, self.balance)
        self.open_position = None
        return trade

    def _record(self, pnl: float) -> None:
        stats = self.stats
        stats.total_trades += 1
        if pnl > 0:
            stats.wins += 1
            stats.total_profit += pnl
            stats.consecutive_wins += 1
            stats.consecutive_losses = 0
            stats.max_consecutive_wins = max(stats.max_consecutive_wins, stats.consecutive_wins)
        elif pnl < 0:
            stats.losses += 1
            stats.total_loss += abs(pnl)
            stats.consecutive_losses += 1
            stats.consecutive_wins = 0
            stats.max_consecutive_losses = max(stats.max_consecutive_losses, stats.consecutive_losses)
        else:
            stats.breakeven += 1

        stats.peak_balance = max(stats.peak_balance, self.balance)
        drawdown = (stats.peak_balance - self.balance) / stats.peak_balance * 100
        stats.max_drawdown = max(stats.max_drawdown, drawdown)

    def run(self, candles: Sequence[Candle | dict[str, Any]]) -> BacktestReport:
        rows = coerce_candles(candles)
        self._reset()
        warmup = self.pipeline.engine.min_candles
        min_confidence = self.config.backtest.min_confidence

        for index in range(warmup, len(rows)):
            candle = rows[index]
            if self.open_position is not None:
                self.check_exit(candle, index)
                continue

            try:
                result = self.pipeline.analyze(rows[: index + 1])
            except SentinelError as exc:
                self.logger.debug("Skip candle {}: {}", index, exc)
                continue

            # backtest threshold replaces the live strategy one
            result.min_confidence = min_confidence
            if result.tradeable:
                self.open_trade(result.signal, result.risk, index)

        if self.open_position is not None and rows:
            self.close_trade(rows[-1].close, "END_OF_DATA", rows[-1], len(rows) - 1)

        return BacktestReport(
            initial_balance=self.config.backtest.initial_balance,
            final_balance=self.balance,
            stats=self.stats,
            trades=list(self.trades),
        )


def generate_sample_data(count: int = 200, seed: int | None = None, base_price: float = 0.5) -> list[Candle]:
    """Random walk with a trend that flips direction every 50 candles."""
    rng = random.Random(seed)
    volatility = 0.02
    trend_strength = 0.0003
    now = datetime.now(UTC)
    candles: list[Candle] = []

    for i in range(count):
        direction = 1 if (i // 50) % 2 == 0 else -1
        trend = direction * trend_strength * (i % 50)
        open_price = max(base_price + trend, 0.01)
        close = max(open_price + (rng.random() - 0.5) * volatility, 0.01)
        high = max(open_price, close) * (1 + rng.random() * volatility / 2)
        low = min(open_price, close) * (1 - rng.random() * volatility / 2)
        candles.append(
            Candle(
                open=round(open_price, 6),
                high=round(high, 6),
                low=round(low, 6),
                close=round(close, 6),
                volume=rng.random() * 1_000_000,
                timestamp=(now - timedelta(minutes=30 * (count - i))).isoformat(),
            )
        )
        base_price = close
    return candles


def load_historical_data(path: str | Path, fallback_count: int = 200, logger=None) -> list[Candle]:
    """Load candles from a JSON list, or generate sample data when the file is absent."""
    logger = logger or default_logger
    data_path = Path(path)
    if data_path.exists():
        raw = json.loads(data_path.read_text(encoding="utf-8"))
        candles = coerce_candles(raw)
        logger.info("Loaded {} candles from {}", len(candles), data_path)
        return candles

    logger.warning("No data at {}; generating {} sample candles", data_path, fallback_count)
    return generate_sample_data(fallback_count)


def save_report(report: BacktestReport, path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    return out
