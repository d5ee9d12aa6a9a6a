import pytest

from factories import ladder_candles, make_risk, make_signal

from sentinel_agent.errors import InsufficientDataError, InvalidEntryError
from sentinel_agent.risk import RiskCalculator, RiskLimits, RiskValidator, calculate_position_size


@pytest.fixture
def calculator():
    return RiskCalculator()


def test_buy_over_ladder_candles(calculator):
    result = calculator.derive_risk(make_signal("BUY"), ladder_candles())

    stop_loss = 0.515 * 0.995
    take_profit = 0.545 + 2 * (0.545 - stop_loss)
    assert result.side == "LONG"
    assert result.entry == 0.545
    assert result.stop_loss == pytest.approx(stop_loss, abs=1e-6)
    assert result.take_profit == pytest.approx(take_profit, abs=1e-6)
    assert result.quantity == pytest.approx(100 / 0.545, abs=1e-4)
    assert result.risk_reward_ratio == pytest.approx(2.0, rel=1e-2)
    assert result.stop_loss <= result.entry <= result.take_profit
    assert result.stop_loss_percent == 5.98


def test_sell_over_ladder_candles(calculator):
    result = calculator.derive_risk(make_signal("SELL"), ladder_candles())

    stop_loss = 0.555 * 1.005
    assert result.signal == "SELL"
    assert result.side == "SHORT"
    assert result.stop_loss == pytest.approx(stop_loss, abs=1e-6)
    assert result.take_profit == pytest.approx(0.545 - 2 * (stop_loss - 0.545), abs=1e-6)
    assert result.take_profit <= result.entry <= result.stop_loss
    assert result.risk_reward_ratio == pytest.approx(2.0, rel=1e-2)


def test_hold_yields_empty_trade(calculator):
    result = calculator.derive_risk(make_signal("HOLD"), ladder_candles())
    assert result.side is None
    assert result.stop_loss is None
    assert result.take_profit is None
    assert result.quantity == 0
    assert result.position_size_usdt == 0
    assert result.risk_reward_ratio == 0
    assert not result.is_actionable


def test_insufficient_candles(calculator):
    with pytest.raises(InsufficientDataError, match="insufficient candle data"):
        calculator.derive_risk(make_signal(), ladder_candles()[:3])


def test_entry_override(calculator):
    assert calculator.derive_risk(make_signal(), ladder_candles(), entry_override=0.55).entry == 0.55


def test_non_positive_override_falls_back_to_signal_price(calculator):
    assert calculator.derive_risk(make_signal(), ladder_candles(), entry_override=0).entry == 0.545


def test_invalid_entry(calculator):
    with pytest.raises(InvalidEntryError):
        calculator.derive_risk(make_signal(price=0), ladder_candles())


def test_entry_below_long_stop_is_rejected(calculator):
    with pytest.raises(InvalidEntryError):
        calculator.derive_risk(make_signal("BUY", price=0.4), ladder_candles())


def test_position_size_and_leverage():
    result = RiskCalculator(leverage=10).derive_risk(make_signal(), ladder_candles(), None, 100)
    assert result.position_size_usdt == 100
    assert result.leverage == 10
    assert result.notional_value == 1000
    assert result.margin_required == 100


def test_custom_ratio():
    result = RiskCalculator(risk_reward_ratio=3).derive_risk(make_signal(), ladder_candles())
    assert result.risk_reward_ratio == pytest.approx(3.0, rel=1e-2)


def test_calculate_position_size():
    sizing = calculate_position_size(5000, 1, 1.0, 0.95)
    assert sizing["risk_amount"] == 50
    assert sizing["quantity"] == pytest.approx(1000, abs=1e-3)
    assert sizing["position_size"] == pytest.approx(1000, abs=1e-2)


def test_calculate_position_size_zero_distance():
    with pytest.raises(InvalidEntryError):
        calculate_position_size(5000, 1, 1.0, 1.0)


def test_validate_good_parameters():
    result = RiskValidator().validate(make_risk())
    assert result.valid is True
    assert result.reasons == ["All risk parameters within acceptable limits"]
    assert result.risk_percent == 1.0


def test_validate_low_ratio():
    result = RiskValidator().validate(make_risk(risk_reward_ratio=1), RiskLimits(min_rr_ratio=1.5))
    assert result.valid is False
    assert any("Risk/Reward" in r for r in result.reasons)


def test_validate_reports_every_failure_in_order():
    params = make_risk(risk_reward_ratio=1, stop_loss_percent=8, risk_amount=200)
    result = RiskValidator().validate(params)
    assert result.valid is False
    assert len(result.reasons) == 3
    assert result.reasons[0].startswith("Risk/Reward")
    assert result.reasons[1].startswith("Stop loss distance")
    assert result.reasons[2].startswith("Risk 4.00%")
    assert result.risk_percent == 4.0


def test_validate_uses_configured_account_size():
    result = RiskValidator(account_size_usdt=1000).validate(make_risk(risk_amount=50))
    assert result.valid is False
    assert result.risk_percent == 5.0


def test_validate_ladder_trade_stop_too_wide():
    params = RiskCalculator().derive_risk(make_signal(), ladder_candles())
    result = RiskValidator().validate(params)
    assert result.valid is False
    assert result.reasons[0].startswith("Stop loss distance")
    assert result.risk_percent == 0.12
