import pytest

from sentinel_agent.config import AppConfig, load_config


def test_defaults():
    config = AppConfig()
    assert config.trading.symbol == "XRP_USDT"
    assert config.strategy.ema.fast == 9
    assert config.strategy.ema.slow == 21
    assert config.risk.risk_reward_ratio == 2.0
    assert config.rate_limiting.ip_weight.capacity == 60
    assert config.rate_limiting.uid_weight.refill_per_second == 20


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yml", environ={})
    assert config == AppConfig()


def test_yaml_values_and_env_override(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(
        "trading:\n  symbol: BTC_USDT\n  interval: 1h\nrisk:\n  risk_reward_ratio: 3\n",
        encoding="utf-8",
    )
    config = load_config(path, environ={"TRADING_SYMBOL": "ETH_USDT", "MEXC_LEVERAGE": "20"})
    assert config.trading.symbol == "ETH_USDT"
    assert config.trading.interval == "1h"
    assert config.risk.risk_reward_ratio == 3
    assert config.mexc.leverage == 20


def test_fast_ema_must_be_below_slow(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("strategy:\n  ema:\n    fast: 21\n    slow: 9\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid config"):
        load_config(path, environ={})


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("trading:\n  sybmol: XRP_USDT\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path, environ={})


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_config(path, environ={})


def test_rate_limit_mode_is_validated(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("rate_limiting:\n  mode: burst\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path, environ={})
    assert AppConfig().rate_limiting.mode == "token_bucket"
