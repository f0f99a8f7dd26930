#!/usr/bin/env python3
"""
Trade Vision - Main Application
Turns chart screenshots into sized trade signals and keeps a trade journal
"""

import argparse
import asyncio
import io
import logging
import mimetypes
import sys

from account_manager import AppState, UserFilter
from chart_analyzer import ChartAnalyzer
from errors import TradeVisionError, SignalError
from journal import equity_curve, format_signal_share, trade_stats
from models import AccountType, Direction, PlanTier, TradeStatus
from session_reconciler import SessionState
from signal_normalizer import normalize_signal
from store import JsonFileStore
import config

# Fix encoding for Windows console
if sys.platform == 'win32':
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

logger = logging.getLogger(__name__)


def setup_logging():
    """Log to the configured UTF-8 file and to stderr"""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.LOG_FILE, encoding=config.LOG_ENCODING),
            logging.StreamHandler(sys.stderr)
        ]
    )


class TradeVisionApp:
    """Main application orchestrator"""

    def __init__(self, store_path: str, analyzer: ChartAnalyzer = None):
        self.state = AppState(JsonFileStore(store_path))
        self.analyzer = analyzer

    def start(self):
        user = self.state.start()
        if self.state.session_state is SessionState.DOWNGRADED:
            print(f"⚠️ Your plan has expired. {user.username} is now on the {user.plan.value} plan.")
        return user

    def print_profile(self):
        user = self.state.require_user()
        expiry = user.plan_expiry_date or "never"
        print(f"{user.username} <{user.email or '-'}> id={user.id}")
        print(f"Plan: {user.plan.value} (expires: {expiry})")
        print(f"Signals used: today {user.signals_used_today}, lifetime {user.signals_used_lifetime}")
        settings = user.settings
        print(f"Account: {settings.account_size} ({settings.account_type.value}), risk {settings.risk_percentage}%")

    async def analyze(self, image_path: str) -> bool:
        """Analyze a chart image and log the resulting signal"""
        self.state.require_user()
        limit_error = self.state.check_quota()
        if limit_error:
            print(f"❌ {limit_error}")
            return False

        with open(image_path, "rb") as f:
            image_bytes = f.read()
        mime_type = mimetypes.guess_type(image_path)[0] or "image/png"

        analyzer = self.analyzer or ChartAnalyzer()
        analysis = await analyzer.analyze(image_bytes, mime_type)
        if not analysis.is_setup_valid:
            print(f"❌ {analysis.reasoning or 'Analysis failed. Please try a clearer chart image.'}")
            return False

        try:
            signal = normalize_signal(analysis, self.state.user.settings)
        except SignalError as e:
            logger.warning(f"Signal rejected: {e}")
            print(f"❌ {e.user_message}")
            return False

        self.state.record_signal(signal)
        print(f"✅ {signal.pair} {signal.direction.value} ({signal.timeframe}) - {signal.strategy}")
        print(f"Entry: {signal.entry}")
        print(f"SL: {signal.stop_loss} ({signal.stop_loss_pips} pips)")
        print(f"TP1: {signal.take_profit1} (+{signal.reward_at_tp1})")
        print(f"TP2: {signal.take_profit2} (+{signal.reward_at_tp2})")
        print(f"Lot size: {signal.lot_size} (risk {signal.risk_amount})")
        print(f"Reasoning: {signal.reasoning}")
        return True

    def print_journal(self, share_id: str = None):
        user = self.state.require_user()
        if share_id:
            trade = next((t for t in user.trade_history if t.id == share_id), None)
            if trade is None:
                raise TradeVisionError(f"Trade {share_id} not found")
            print(format_signal_share(trade))
            return

        stats = trade_stats(user.trade_history)
        factor = stats.profit_factor if stats.profit_factor is not None else "∞"
        print(f"Trades: {stats.total_trades} | Win rate: {stats.win_rate}% | Net: {stats.net_pnl} | "
              f"Profit factor: {factor} | Avg: {stats.average_pnl}")
        for trade in user.trade_history:
            print(f"{trade.id}  {trade.date[:10]}  {trade.pair:<8} {trade.type.value:<4} "
                  f"{trade.entry:<10} {trade.status.value:<7} {trade.pnl:+}")
        curve = equity_curve(user.trade_history)
        if curve:
            print(f"Equity curve: {curve}")

    def print_manual_journal(self):
        user = self.state.require_user()
        stats = self.state.journal_summary()
        print(f"Balance: {stats.current_balance} | Growth: {stats.growth_percentage:+}% | Net: {stats.total_pnl} | "
              f"W/L: {stats.wins}/{stats.losses} | Win rate: {stats.win_rate}%")
        for entry in user.journal_entries:
            print(f"{entry.id}  {entry.date[:10]}  {entry.pair:<8} {entry.direction.value:<4} {entry.result.value:<4} "
                  f"{entry.pnl_amount:+} -> {entry.account_balance_after} ({entry.growth_percentage:+}%)")

    def print_users(self, user_filter: UserFilter, search: str):
        stats = self.state.plan_stats()
        print(" | ".join(f"{tier}: {count}" for tier, count in stats.items()))
        for user in self.state.list_users(user_filter, search):
            print(f"{user.id}  {user.username:<16} {user.email or '-':<28} {user.plan.value:<8} "
                  f"{user.plan_expiry_date or '-'}")

    async def run(self, args) -> int:
        self.start()
        command = args.command

        if command == "signup":
            user = self.state.signup(args.username, args.email, args.device)
            print(f"✅ Welcome {user.username}")
        elif command == "login":
            user = self.state.login(args.identifier)
            print(f"✅ Logged in as {user.username}")
        elif command == "logout":
            self.state.logout()
            print("Logged out")
        elif command == "whoami":
            self.print_profile()
        elif command == "settings":
            account_type = AccountType(args.account_type) if args.account_type else None
            self.state.update_settings(args.account_size, args.risk, account_type, username=args.username)
            self.print_profile()
        elif command == "analyze":
            if not await self.analyze(args.image):
                return 1
        elif command == "journal":
            if args.manual:
                self.print_manual_journal()
            else:
                self.print_journal(args.share)
        elif command == "set-status":
            self.state.set_trade_status(args.trade_id, TradeStatus(args.status.upper()), args.pnl, args.exit)
            print(f"✅ Trade {args.trade_id} updated")
        elif command == "journal-add":
            self.state.add_journal_entry(args.pair, Direction(args.direction.upper()),
                                         TradeStatus(args.result.upper()), args.pnl, args.lots,
                                         args.setup or "", args.notes or "")
            print(f"✅ Journal entry added, balance {self.state.user.settings.account_size}")
        elif command == "journal-delete":
            self.state.delete_journal_entry(args.entry_id)
            print(f"✅ Journal entry {args.entry_id} deleted")
        elif command == "admin-set-plan":
            user = self.state.set_plan(args.user_id, PlanTier(args.plan.upper()), args.expiry)
            print(f"✅ {user.username} -> {user.plan.value}")
        elif command == "admin-users":
            self.print_users(UserFilter(args.filter.upper()), args.search or "")
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tradevision", description="AI chart signals and trade journal")
    parser.add_argument("--store", default=config.STORE_PATH, help="Path to the local storage file")
    sub = parser.add_subparsers(dest="command", required=True)

    signup = sub.add_parser("signup", help="Create an account")
    signup.add_argument("username")
    signup.add_argument("email")
    signup.add_argument("--device")

    login = sub.add_parser("login", help="Log in by email or username")
    login.add_argument("identifier")

    sub.add_parser("logout", help="End the session")
    sub.add_parser("whoami", help="Show the active profile")

    settings = sub.add_parser("settings", help="Update risk settings")
    settings.add_argument("--account-size", type=float)
    settings.add_argument("--risk", type=float, help="Risk percentage per trade")
    settings.add_argument("--account-type", choices=[t.value for t in AccountType])
    settings.add_argument("--username")

    analyze = sub.add_parser("analyze", help="Generate a signal from a chart screenshot")
    analyze.add_argument("image")

    journal = sub.add_parser("journal", help="Show the trade history")
    journal.add_argument("--share", metavar="TRADE_ID", help="Print share text for a trade")
    journal.add_argument("--manual", action="store_true", help="Show the manual journal with balance and growth")

    status = sub.add_parser("set-status", help="Set the outcome of a logged trade")
    status.add_argument("trade_id")
    status.add_argument("status", choices=[s.value for s in TradeStatus] + [s.value.lower() for s in TradeStatus])
    status.add_argument("--pnl", type=float)
    status.add_argument("--exit", type=float)

    journal_add = sub.add_parser("journal-add", help="Add a manual journal entry (Advanced/Pro)")
    journal_add.add_argument("pair")
    journal_add.add_argument("direction")
    journal_add.add_argument("result")
    journal_add.add_argument("pnl", type=float)
    journal_add.add_argument("--lots", type=float, default=0.0)
    journal_add.add_argument("--setup")
    journal_add.add_argument("--notes")

    journal_delete = sub.add_parser("journal-delete", help="Delete a manual journal entry")
    journal_delete.add_argument("entry_id")

    plan = sub.add_parser("admin-set-plan", help="Override a user's plan")
    plan.add_argument("user_id")
    plan.add_argument("plan")
    plan.add_argument("--expiry", help="Expiry date (YYYY-MM-DD or ISO-8601), required for paid plans")

    users = sub.add_parser("admin-users", help="List users")
    users.add_argument("--filter", default="ALL", choices=[f.value for f in UserFilter] + [f.value.lower() for f in UserFilter])
    users.add_argument("--search")

    return parser


async def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    app = TradeVisionApp(args.store)
    try:
        return await app.run(args)
    except TradeVisionError as e:
        print(f"❌ {e}")
        return 1
    except (ValueError, OSError) as e:
        logger.error(f"Command {args.command} failed: {e}")
        print(f"❌ {e}")
        return 1


def cli():
    """Console script entry point"""
    setup_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Application terminated by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
