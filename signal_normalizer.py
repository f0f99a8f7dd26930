# signal_normalizer.py
"""Turn a chart analysis into a sized, bounded trade signal"""

import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime
from typing import Optional, Tuple

from models import (
    AnalysisResult, Direction, TradeLog, TradeSignal, TradeStatus, UserSettings,
    new_id, to_iso, utc_now,
)
from errors import InvalidSetup, UnsupportedDirection
from symbol_mapper import Instrument, get_instrument
import config

logger = logging.getLogger(__name__)


def round_half_up(value: float, digits: int) -> float:
    """Round to the given decimal places with exact halves going up (0.125 -> 0.13)"""
    return float(Decimal(value).quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP))


def parse_direction(raw: str, reasoning: str = "") -> Direction:
    """Map the analysis direction string to a Direction"""
    value = raw.strip().upper() if isinstance(raw, str) else ""
    try:
        return Direction(value)
    except ValueError:
        raise UnsupportedDirection(f"Unsupported trade direction: {raw!r}", reasoning) from None


def calculate_risk_amount(settings: UserSettings) -> float:
    """Money at risk per trade: account size times risk percentage"""
    return round_half_up(settings.account_size * (settings.risk_percentage / 100), config.MONEY_DIGITS)


def calculate_stop_pips(entry: float, stop_loss: float, instrument: Instrument) -> int:
    """Stop distance in whole pips, never less than one"""
    sl_pips = int(round_half_up(abs(entry - stop_loss) / instrument.pip_size, 0))
    if sl_pips < 1:
        logger.debug(f"Stop distance under one pip ({abs(entry - stop_loss)}), clamping to 1")
        sl_pips = 1
    return sl_pips


def calculate_lot_size(risk_amount: float, sl_pips: int, instrument: Instrument) -> float:
    """
    Calculate lot size so that a stop-out loses the risk amount

    Args:
        risk_amount: Money at risk for the trade
        sl_pips: Stop distance in pips (>= 1)
        instrument: Pip value per standard lot comes from here

    Returns:
        Lot size rounded to 0.01 and floored at the broker minimum
    """
    calculated_lot_size = risk_amount / (sl_pips * instrument.pip_value)
    logger.debug(f"Calculated lot size: {calculated_lot_size} "
                 f"(risk: {risk_amount}, sl pips: {sl_pips}, pip value: {instrument.pip_value})")

    lot_size = round_half_up(calculated_lot_size, config.LOT_SIZE_DIGITS)
    if lot_size < config.MIN_LOT_SIZE:
        logger.debug(f"Lot size {lot_size} below minimum, using {config.MIN_LOT_SIZE}")
        lot_size = config.MIN_LOT_SIZE
    return lot_size


def _validate_prices(analysis: AnalysisResult) -> None:
    for name, value in (("entry", analysis.entry), ("stop loss", analysis.stop_loss)):
        if value is None or not math.isfinite(value) or value == 0:
            raise InvalidSetup(f"Invalid {name} price: {value}", analysis.reasoning)
    if analysis.entry == analysis.stop_loss:
        raise InvalidSetup("Entry and stop loss are identical", analysis.reasoning)


def _resolve_target(explicit: Optional[float], multiple: int, entry: float, risk_distance: float,
                    risk_amount: float, direction: Direction, instrument: Instrument,
                    label: str, reasoning: str) -> Tuple[float, float]:
    """Return (take profit price, reward at that price)"""
    if explicit is None:
        price = round_half_up(entry + direction.sign * multiple * risk_distance, instrument.digits)
        return price, multiple * risk_amount

    if not math.isfinite(explicit):
        raise InvalidSetup(f"Invalid {label} price: {explicit}", reasoning)
    price = round_half_up(explicit, instrument.digits)
    if direction.sign * (price - entry) <= 0:
        raise InvalidSetup(f"{label} {price} is on the wrong side of entry {entry} for a {direction.value}",
                           reasoning)
    reward = round_half_up(risk_amount * abs(price - entry) / risk_distance, config.MONEY_DIGITS)
    return price, reward


def normalize_signal(analysis: AnalysisResult, settings: UserSettings,
                     now: Optional[datetime] = None) -> TradeSignal:
    """
    Build a trade signal from an analysis result and the user's risk settings

    Missing take profits are derived at 1:1 and 1:2 of the risk distance;
    analyst-provided targets are kept and their reward is scaled to the
    actual distance.

    Args:
        analysis: The chart analysis
        settings: Account size and risk percentage

    Returns:
        The trade signal

    Raises:
        InvalidSetup: The analysis was rejected or its prices are degenerate
        UnsupportedDirection: Direction is neither BUY nor SELL
    """
    if not analysis.is_setup_valid:
        raise InvalidSetup("Analysis did not produce a valid setup", analysis.reasoning)

    direction = parse_direction(analysis.direction, analysis.reasoning)
    _validate_prices(analysis)

    instrument = get_instrument(analysis.pair)
    entry = round_half_up(analysis.entry, instrument.digits)
    stop_loss = round_half_up(analysis.stop_loss, instrument.digits)
    if entry == stop_loss:
        raise InvalidSetup(f"Entry and stop loss collapse to {entry} at {instrument.digits} digits",
                           analysis.reasoning)
    if direction.sign * (entry - stop_loss) <= 0:
        raise InvalidSetup(f"Stop loss {stop_loss} is on the wrong side of entry {entry} for a {direction.value}",
                           analysis.reasoning)

    risk_distance = abs(entry - stop_loss)
    sl_pips = calculate_stop_pips(entry, stop_loss, instrument)
    risk_amount = calculate_risk_amount(settings)
    lot_size = calculate_lot_size(risk_amount, sl_pips, instrument)

    tp1, reward_tp1 = _resolve_target(analysis.take_profit1, config.TP1_REWARD_MULTIPLE, entry, risk_distance,
                                      risk_amount, direction, instrument, "TP1", analysis.reasoning)
    tp2, reward_tp2 = _resolve_target(analysis.take_profit2, config.TP2_REWARD_MULTIPLE, entry, risk_distance,
                                      risk_amount, direction, instrument, "TP2", analysis.reasoning)

    tp_pips = round_half_up(abs(tp1 - entry) / instrument.pip_size, 1)

    signal = TradeSignal(
        id=new_id(),
        timestamp=to_iso(now or utc_now()),
        pair=analysis.pair.upper(),
        timeframe=analysis.timeframe,
        direction=direction,
        strategy=analysis.strategy,
        entry=entry,
        stop_loss=stop_loss,
        take_profit1=tp1,
        take_profit2=tp2,
        stop_loss_pips=sl_pips,
        take_profit_pips=tp_pips,
        lot_size=lot_size,
        risk_amount=risk_amount,
        reward_at_tp1=reward_tp1,
        reward_at_tp2=reward_tp2,
        reasoning=analysis.reasoning,
        market_structure=list(analysis.market_structure),
    )

    logger.info(f"Normalized signal - {signal} ({instrument.asset_class.value})")
    return signal


def build_trade_log(signal: TradeSignal) -> TradeLog:
    """Pending journal record for a freshly generated signal"""
    return TradeLog(
        id=signal.id,
        date=signal.timestamp,
        pair=signal.pair,
        type=signal.direction,
        entry=signal.entry,
        status=TradeStatus.PENDING,
        timeframe=signal.timeframe,
        reasoning=signal.reasoning,
        sl=signal.stop_loss,
        tp1=signal.take_profit1,
        tp2=signal.take_profit2,
        strategy=signal.strategy,
        confluence=list(signal.market_structure),
    )
