"""
Signal normalization tests: pip sizing, lot sizing and target derivation.
"""

import math

import pytest

from errors import InvalidSetup, UnsupportedDirection
from models import Direction, TradeStatus, UserSettings
from signal_normalizer import (
    build_trade_log, calculate_lot_size, calculate_risk_amount, normalize_signal, parse_direction, round_half_up,
)
from symbol_mapper import get_instrument


class TestGoldScenario:
    """XAUUSD buy, entry 2024.50, stop 2024.00, $1,000 at 1%."""

    def test_risk_and_size(self, make_analysis, settings):
        signal = normalize_signal(make_analysis(), settings)

        assert signal.risk_amount == 10.0
        assert signal.stop_loss_pips == 5  # 0.50 / 0.1 pip
        assert signal.lot_size == pytest.approx(0.2)

    def test_default_targets(self, make_analysis, settings):
        signal = normalize_signal(make_analysis(), settings)

        assert signal.direction is Direction.BUY
        assert signal.take_profit1 == pytest.approx(2025.00)
        assert signal.take_profit2 == pytest.approx(2025.50)
        assert signal.reward_at_tp1 == 10.0
        assert signal.reward_at_tp2 == 20.0
        assert signal.take_profit_pips == pytest.approx(5.0)

    def test_prices_rounded_to_two_digits(self, make_analysis, settings):
        signal = normalize_signal(make_analysis(entry=2024.5049, stop_loss=2023.9951), settings)

        assert signal.entry == 2024.5
        assert signal.stop_loss == 2024.0


def test_sell_targets_below_entry(make_analysis, settings):
    signal = normalize_signal(
        make_analysis(pair="EURUSD", direction="SELL", entry=1.10500, stop_loss=1.10700), settings)

    assert signal.stop_loss_pips == 20
    assert signal.take_profit1 < signal.entry
    assert signal.take_profit2 < signal.take_profit1
    assert signal.take_profit1 == pytest.approx(1.10300)
    assert signal.take_profit2 == pytest.approx(1.10100)
    assert signal.lot_size == pytest.approx(0.05)


def test_jpy_pair_uses_two_decimal_pips(make_analysis, settings):
    signal = normalize_signal(
        make_analysis(pair="USD/JPY", direction="BUY", entry=150.250, stop_loss=150.000), settings)

    assert signal.stop_loss_pips == 25
    assert signal.lot_size == pytest.approx(0.04)
    assert signal.take_profit2 == pytest.approx(150.750)


def test_lot_size_floored_at_broker_minimum(make_analysis):
    tiny_account = UserSettings(account_size=100, risk_percentage=0.5)
    signal = normalize_signal(make_analysis(entry=2000.0, stop_loss=1990.0), tiny_account)

    assert signal.risk_amount == 0.5
    assert signal.lot_size == 0.01


def test_sub_pip_stop_clamped_to_one_pip(make_analysis, settings):
    signal = normalize_signal(
        make_analysis(pair="EURUSD", entry=1.10004, stop_loss=1.10000), settings)

    assert signal.stop_loss_pips == 1
    assert signal.lot_size == pytest.approx(1.0)


def test_explicit_targets_pass_through(make_analysis, settings):
    analysis = make_analysis(entry=2000.0, stop_loss=1990.0, take_profit1=2015.0, take_profit2=2040.0)
    signal = normalize_signal(analysis, settings)

    assert signal.take_profit1 == 2015.0
    assert signal.take_profit2 == 2040.0
    # Reward scales with the real distance: 15 and 40 against a 10 point risk
    assert signal.reward_at_tp1 == pytest.approx(15.0)
    assert signal.reward_at_tp2 == pytest.approx(40.0)


def test_missing_target_derived_alongside_explicit_one(make_analysis, settings):
    analysis = make_analysis(entry=2000.0, stop_loss=1990.0, take_profit1=2030.0)
    signal = normalize_signal(analysis, settings)

    assert signal.take_profit1 == 2030.0
    assert signal.reward_at_tp1 == pytest.approx(30.0)
    assert signal.take_profit2 == pytest.approx(2020.0)
    assert signal.reward_at_tp2 == pytest.approx(20.0)


class TestRejections:

    def test_invalid_setup_flag(self, make_analysis, settings):
        analysis = make_analysis(is_setup_valid=False, reasoning="Image is not a chart")
        with pytest.raises(InvalidSetup) as excinfo:
            normalize_signal(analysis, settings)
        assert excinfo.value.reasoning == "Image is not a chart"
        assert "Image is not a chart" in excinfo.value.user_message

    @pytest.mark.parametrize("entry,stop_loss", [
        (0.0, 2024.0),
        (2024.0, 0.0),
        (math.nan, 2024.0),
        (2024.0, math.inf),
        (2024.0, 2024.0),
    ])
    def test_degenerate_prices(self, make_analysis, settings, entry, stop_loss):
        with pytest.raises(InvalidSetup):
            normalize_signal(make_analysis(entry=entry, stop_loss=stop_loss), settings)

    def test_prices_collapsing_after_rounding(self, make_analysis, settings):
        with pytest.raises(InvalidSetup):
            normalize_signal(make_analysis(pair="EURUSD", entry=1.100004, stop_loss=1.100001), settings)

    def test_stop_on_wrong_side(self, make_analysis, settings):
        with pytest.raises(InvalidSetup):
            normalize_signal(make_analysis(direction="BUY", entry=2024.0, stop_loss=2030.0), settings)

    def test_explicit_target_on_wrong_side(self, make_analysis, settings):
        analysis = make_analysis(direction="SELL", entry=2024.0, stop_loss=2030.0, take_profit1=2026.0)
        with pytest.raises(InvalidSetup):
            normalize_signal(analysis, settings)

    @pytest.mark.parametrize("direction", ["HOLD", "N/A", "", None])
    def test_unsupported_direction(self, make_analysis, settings, direction):
        with pytest.raises(UnsupportedDirection):
            normalize_signal(make_analysis(direction=direction), settings)


def test_direction_parsing_is_case_insensitive():
    assert parse_direction(" sell ") is Direction.SELL
    assert parse_direction("Buy") is Direction.BUY


def test_risk_amount():
    assert calculate_risk_amount(UserSettings(account_size=25000, risk_percentage=1.5)) == 375.0


def test_metal_lot_size_formula():
    # $200 risk over a 40 pip gold stop at $10 per pip per lot
    assert calculate_lot_size(200.0, 40, get_instrument("XAUUSD")) == pytest.approx(0.5)


def test_trade_log_from_signal(make_analysis, settings):
    signal = normalize_signal(make_analysis(market_structure=["BOS", "FVG"]), settings)
    trade = build_trade_log(signal)

    assert trade.id == signal.id
    assert trade.status is TradeStatus.PENDING
    assert trade.type is Direction.BUY
    assert trade.sl == signal.stop_loss
    assert trade.tp1 == signal.take_profit1
    assert trade.tp2 == signal.take_profit2
    assert trade.confluence == ["BOS", "FVG"]
    assert trade.pnl == 0.0


def test_exact_half_lot_rounds_up():
    # $2.50 over a 2 pip gold stop is exactly 0.125 lots
    assert calculate_lot_size(2.5, 2, get_instrument("XAUUSD")) == 0.13


def test_exact_half_amounts_round_up():
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(2.5, 0) == 3.0
