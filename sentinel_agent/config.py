"""Configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class TradingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symbol: str = "XRP_USDT"
    interval: str = "30m"
    position_size_usdt: float = Field(default=100.0, gt=0)


class RiskConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stop_loss_buffer_percent: float = Field(default=0.5, ge=0)
    risk_reward_ratio: float = Field(default=2.0, gt=0)
    max_risk_percent: float = Field(default=2.0, gt=0)
    min_rr_ratio: float = Field(default=1.5, ge=0)
    max_stop_loss_percent: float = Field(default=5.0, gt=0)
    account_size_usdt: float = Field(default=5000.0, gt=0)


class EmaConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fast: int = Field(default=9, ge=1)
    slow: int = Field(default=21, ge=2)

    @model_validator(mode="after")
    def _fast_below_slow(self) -> "EmaConfig":
        if self.fast >= self.slow:
            raise ValueError("ema.fast must be lower than ema.slow")
        return self


class RsiConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    period: int = Field(default=14, ge=2)
    overbought: float = Field(default=70, gt=0, lt=100)
    oversold: float = Field(default=30, gt=0, lt=100)
    buy_min: float = Field(default=50, ge=0, le=100)
    sell_max: float = Field(default=50, ge=0, le=100)

    @model_validator(mode="after")
    def _oversold_below_overbought(self) -> "RsiConfig":
        if self.oversold >= self.overbought:
            raise ValueError("rsi.oversold must be lower than rsi.overbought")
        return self


class StrategyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ema: EmaConfig = Field(default_factory=EmaConfig)
    rsi: RsiConfig = Field(default_factory=RsiConfig)
    min_confidence: int = Field(default=60, ge=0, le=100)


class MexcConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_key: str = ""
    api_secret: str = ""
    base_url: str = "https://contract.mexc.com"
    timeout_sec: float = Field(default=10.0, gt=0)
    leverage: int = Field(default=10, ge=1, le=200)
    position_mode: str = Field(default="isolated", pattern=r"^(isolated|cross)$")


class BucketConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    capacity: float = Field(gt=0)
    refill_per_second: float = Field(gt=0)


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    # token_bucket: MEXC IP/UID weight buckets; delay: fixed gap of 1/max_requests_per_second
    mode: str = Field(default="token_bucket", pattern=r"^(token_bucket|delay)$")
    max_requests_per_second: float = Field(default=5, gt=0)
    ip_weight: BucketConfig = Field(default_factory=lambda: BucketConfig(capacity=60, refill_per_second=15))
    uid_weight: BucketConfig = Field(default_factory=lambda: BucketConfig(capacity=100, refill_per_second=20))


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", pattern=r"(?i)^(trace|debug|info|success|warning|error|critical)$")
    console: bool = True
    file: bool = False
    log_dir: str = "logs"


class BacktestConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data_path: str = "data/historical.json"
    initial_balance: float = Field(default=5000.0, gt=0)
    commission_percent: float = Field(default=0.1, ge=0)
    slippage_percent: float = Field(default=0.05, ge=0)
    min_confidence: int = Field(default=60, ge=0, le=100)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    trading: TradingConfig = Field(default_factory=TradingConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    mexc: MexcConfig = Field(default_factory=MexcConfig)
    rate_limiting: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)


# env var -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MEXC_API_KEY": ("mexc", "api_key"),
    "MEXC_SECRET_KEY": ("mexc", "api_secret"),
    "MEXC_BASE_URL": ("mexc", "base_url"),
    "MEXC_LEVERAGE": ("mexc", "leverage"),
    "TRADING_SYMBOL": ("trading", "symbol"),
    "TRADING_INTERVAL": ("trading", "interval"),
    "POSITION_SIZE_USDT": ("trading", "position_size_usdt"),
    "LOG_LEVEL": ("logging", "level"),
}


def _apply_env(raw: dict[str, Any], environ: dict[str, str] | os._Environ[str]) -> dict[str, Any]:
    payload = {key: dict(value) if isinstance(value, dict) else value for key, value in raw.items()}
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value in (None, ""):
            continue
        payload.setdefault(section, {})[key] = value
    return payload


def load_config(path: str | Path | None = "config.yml", environ: dict[str, str] | None = None) -> AppConfig:
    """Load configuration from YAML file, apply env overrides and validate schema.

    A missing file is not an error: every section has defaults.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    raw_data: dict[str, Any] = {}
    config_path = Path(path) if path is not None else None
    if config_path is not None and config_path.exists():
        with config_path.open("r", encoding="utf-8") as fh:
            raw_data = yaml.safe_load(fh) or {}
        if not isinstance(raw_data, dict):
            raise ValueError(f"Invalid config '{config_path}': top level must be a mapping")

    try:
        return AppConfig.model_validate(_apply_env(raw_data, environ))
    except ValidationError as exc:
        raise ValueError(f"Invalid config '{config_path}': {exc}") from exc
