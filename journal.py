# journal.py
"""Trade history and manual journal bookkeeping"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional

from models import (
    Direction, JournalEntry, TradeLog, TradeStatus, new_id, to_iso, utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class TradeStats:
    total_trades: int
    wins: int
    losses: int
    win_rate: float  # Percent, one decimal
    net_pnl: float
    profit_factor: Optional[float]  # Wins per loss; None when there are no losses
    best_trade: float
    average_pnl: float


@dataclass
class JournalStats:
    current_balance: float
    total_pnl: float
    growth_percentage: float
    wins: int
    losses: int
    win_rate: float


def add_trade(history: List[TradeLog], trade: TradeLog) -> List[TradeLog]:
    """New history with the trade first"""
    return [trade] + list(history)


def edit_trade(history: List[TradeLog], trade: TradeLog) -> List[TradeLog]:
    """New history with the trade of the same id replaced"""
    if not any(item.id == trade.id for item in history):
        raise KeyError(f"Trade {trade.id} not found")
    return [trade if item.id == trade.id else item for item in history]


def delete_trade(history: List[TradeLog], trade_id: str) -> List[TradeLog]:
    return [item for item in history if item.id != trade_id]


def set_trade_status(history: List[TradeLog], trade_id: str, status: TradeStatus,
                     pnl: Optional[float] = None, exit_price: Optional[float] = None) -> List[TradeLog]:
    """Close out (or reopen) a logged trade"""
    for trade in history:
        if trade.id == trade_id:
            updated = replace(
                trade,
                status=status,
                pnl=trade.pnl if pnl is None else float(pnl),
                exit=trade.exit if exit_price is None else float(exit_price),
            )
            logger.info(f"Trade {trade_id} ({trade.pair}) marked {status.value}, pnl {updated.pnl}")
            return edit_trade(history, updated)
    raise KeyError(f"Trade {trade_id} not found")


def trade_stats(history: List[TradeLog]) -> TradeStats:
    total = len(history)
    wins = sum(1 for trade in history if trade.status is TradeStatus.WIN)
    losses = sum(1 for trade in history if trade.status is TradeStatus.LOSS)
    net_pnl = sum(trade.pnl for trade in history)
    return TradeStats(
        total_trades=total,
        wins=wins,
        losses=losses,
        win_rate=round(wins / total * 100, 1) if total else 0.0,
        net_pnl=round(net_pnl, 2),
        profit_factor=round(wins / losses, 2) if losses else None,
        best_trade=max([trade.pnl for trade in history] + [0.0]),
        average_pnl=round(net_pnl / total, 2) if total else 0.0,
    )


def equity_curve(history: List[TradeLog]) -> List[float]:
    """Running PnL total from the oldest trade to the newest"""
    curve = []
    running_total = 0.0
    for trade in reversed(history):
        running_total += trade.pnl
        curve.append(round(running_total, 2))
    return curve


def add_journal_entry(entries: List[JournalEntry], account_size: float, pair: str, direction: Direction,
                      result: TradeStatus, pnl_amount: float, lot_size: float = 0.0,
                      setup_type: str = "", notes: str = "") -> List[JournalEntry]:
    """
    Record a manual trade and its effect on the account balance

    The balance before the trade is the newest entry's balance, or the
    account size for the first entry.

    Returns:
        New entry list, newest first
    """
    if result is TradeStatus.PENDING:
        raise ValueError("Journal entries record closed trades only")
    if not pair:
        raise ValueError("Pair is required")

    previous_balance = entries[0].account_balance_after if entries else account_size
    new_balance = previous_balance + pnl_amount
    growth = (new_balance - previous_balance) / previous_balance * 100 if previous_balance else 0.0

    entry = JournalEntry(
        id=new_id(),
        date=to_iso(utc_now()),
        pair=pair.upper(),
        direction=direction,
        setup_type=setup_type or "Manual",
        lot_size=lot_size,
        result=result,
        pnl_amount=pnl_amount,
        account_balance_after=round(new_balance, 2),
        growth_percentage=round(growth, 2),
        notes=notes,
    )
    logger.info(f"Journal entry {entry.pair} {entry.result.value} {pnl_amount:+} -> balance {entry.account_balance_after}")
    return [entry] + list(entries)


def delete_journal_entry(entries: List[JournalEntry], entry_id: str) -> List[JournalEntry]:
    return [entry for entry in entries if entry.id != entry_id]


def starting_balance(entries: List[JournalEntry], account_size: float) -> float:
    """Balance before the oldest entry, or the account size for an empty journal"""
    if not entries:
        return account_size
    oldest = entries[-1]
    return round(oldest.account_balance_after - oldest.pnl_amount, 2)


def journal_stats(entries: List[JournalEntry], starting_balance: float) -> JournalStats:
    current_balance = entries[0].account_balance_after if entries else starting_balance
    wins = sum(1 for entry in entries if entry.result is TradeStatus.WIN)
    losses = sum(1 for entry in entries if entry.result is TradeStatus.LOSS)
    return JournalStats(
        current_balance=current_balance,
        total_pnl=round(sum(entry.pnl_amount for entry in entries), 2),
        growth_percentage=round((current_balance - starting_balance) / starting_balance * 100, 2),
        wins=wins,
        losses=losses,
        win_rate=round(wins / len(entries) * 100, 1) if entries else 0.0,
    )


def format_signal_share(trade: TradeLog) -> str:
    """Share text for a logged signal"""
    arrow = "🟢 BUY" if trade.type is Direction.BUY else "🔴 SELL"
    lines = [
        "🚨 TRADE VISION INTEL 🚨",
        "",
        f"📅 {trade.date}",
        f"💎 {trade.pair}",
        f"⏳ {trade.timeframe or 'H1'}",
        f"🧠 Strategy: {trade.strategy or 'AI Structure Analysis'}",
        "",
        f"{arrow} @ {trade.entry}",
        "",
        f"🛡️ SL: {trade.sl if trade.sl is not None else 'N/A'}",
        f"🎯 TP1 (1:1): {trade.tp1 if trade.tp1 is not None else 'N/A'}",
        f"🎯 TP2 (1:2): {trade.tp2 if trade.tp2 is not None else 'N/A'}",
        "",
        f"🧠 Logic: {trade.reasoning or 'AI Structure Detection'}",
    ]
    return "\n".join(lines)
