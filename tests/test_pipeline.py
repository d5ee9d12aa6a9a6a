from factories import bullish_candles, flat_candles

from sentinel_agent.config import AppConfig
from sentinel_agent.pipeline import SignalPipeline, process_payload, run_pipeline


def test_run_pipeline_actionable():
    result = run_pipeline(bullish_candles(40))
    assert result.signal.kind == "BUY"
    assert result.risk is not None
    assert result.risk.side == "LONG"
    assert result.validation is not None
    assert result.risk.stop_loss <= result.risk.entry <= result.risk.take_profit


def test_run_pipeline_hold_skips_risk():
    result = run_pipeline(flat_candles(30))
    assert result.signal.kind == "HOLD"
    assert result.risk is None
    assert result.validation is None
    assert result.tradeable is False


def test_pipeline_uses_config():
    config = AppConfig.model_validate({"mexc": {"leverage": 5}, "trading": {"position_size_usdt": 50}})
    result = SignalPipeline(config).analyze(bullish_candles(40))
    assert result.risk.leverage == 5
    assert result.risk.position_size_usdt == 50


def test_process_payload_success():
    payload = {"candles": [c.to_dict() for c in bullish_candles(40)]}
    out = process_payload(payload)
    assert out["success"] is True
    assert out["signal"] == "BUY"
    assert set(out["indicators"]) == {"ema9", "ema21", "rsi"}
    assert out["tradeParams"]["side"] == "LONG"
    assert "entry" in out["tradeParams"]
    assert "valid" in out["riskValidation"]
    assert out["analysis"]["candlesAnalyzed"] == 40
    assert out["marketContext"]["signal"] == "BUY"


def test_process_payload_accepts_klines_key():
    out = process_payload({"klines": [c.to_dict() for c in flat_candles(30)]})
    assert out["success"] is True
    assert out["signal"] == "HOLD"
    assert out["tradeParams"] is None
    assert out["riskValidation"] is None


def test_process_payload_missing_candles():
    out = process_payload({})
    assert out["success"] is False
    assert out["error"] == "No candles data provided"


def test_process_payload_insufficient_candles():
    out = process_payload([c.to_dict() for c in bullish_candles(20)])
    assert out["success"] is False
    assert "Insufficient candle data" in out["error"]


def test_process_payload_bad_candle():
    rows = [c.to_dict() for c in bullish_candles(30)]
    rows[5]["close"] = -1
    out = process_payload({"candles": rows})
    assert out["success"] is False
    assert "close" in out["error"]


def test_process_payload_out_of_range_timestamp():
    rows = [c.to_dict() for c in bullish_candles(30)]
    rows[0]["timestamp"] = None
    rows[0]["timestampMs"] = 1e25
    out = process_payload({"candles": rows})
    assert out["success"] is False
    assert "timestamp" in out["error"]


def test_min_confidence_gates_tradeable():
    strict = AppConfig.model_validate({"strategy": {"min_confidence": 100}})
    result = SignalPipeline(strict).analyze(bullish_candles(40))
    assert result.signal.confidence < 100
    assert result.risk is not None
    assert result.tradeable is False
    assert SignalPipeline().analyze(bullish_candles(40)).tradeable is True

    out = process_payload({"candles": [c.to_dict() for c in bullish_candles(40)]}, strict)
    assert out["tradeable"] is False
