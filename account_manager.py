"""
Application state: active session, user directory and profile mutations
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from models import (
    AccountType, Direction, NotificationPrefs, PlanTier, TradeSignal, TradeStatus,
    UserProfile, UserSettings, new_id, parse_iso, to_iso, utc_now,
)
from errors import AccountError, StoreParseError
from session_reconciler import SessionState, reconcile_store
from signal_normalizer import build_trade_log
import journal
import store as storage
import config

logger = logging.getLogger(__name__)


class UserFilter(Enum):
    ALL = "ALL"
    FREE = "FREE"
    PAID = "PAID"
    EXPIRING = "EXPIRING"


class AppState:
    """
    Holds the active user for one run of the application

    Lifecycle: start() reconciles the stored session, operations mutate the
    profile through update_user(), logout() drops the session pointer. Every
    mutation is written to the session key and to the user's directory entry.
    """

    def __init__(self, store, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock
        self.user: Optional[UserProfile] = None
        self.session_state = SessionState.LOGGED_OUT

    def start(self) -> Optional[UserProfile]:
        """Load and reconcile the session"""
        result = reconcile_store(self.store, self.clock())
        self.user = result.session
        self.session_state = result.state
        return self.user

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None

    def require_user(self) -> UserProfile:
        if self.user is None:
            raise AccountError("Not logged in")
        return self.user

    def _users_for_update(self) -> List[UserProfile]:
        """Full user directory for a read-modify-write; refuses to work on a corrupted one"""
        try:
            return storage.read_users(self.store)
        except StoreParseError as e:
            logger.error(f"{e} - refusing to overwrite the user directory")
            raise AccountError("The stored user directory is corrupted. Fix or remove it before making changes.") from e

    # ---- authentication ----

    def signup(self, username: str, email: str, device: Optional[str] = None) -> UserProfile:
        """Create a Free account and make it the active session"""
        if not username or not username.strip():
            raise AccountError("Please choose a username")
        if not email:
            raise AccountError("Please fill in all fields")
        if "@" not in email:
            raise AccountError("Invalid email format")

        users = self._users_for_update()
        if any(user.email and user.email.lower() == email.lower() for user in users):
            raise AccountError("This email is already registered.")

        new_user = UserProfile(
            id=new_id(),
            username=username.strip(),
            email=email,
            plan=PlanTier.FREE,
            join_date=to_iso(self.clock()),
            last_device=device,
            settings=UserSettings.default(),
        )
        users.append(new_user)
        storage.save_users(self.store, users)
        storage.save_session(self.store, new_user)
        logger.info(f"New account created: {new_user.username} ({new_user.id})")
        return self.start()

    def login(self, identifier: str) -> UserProfile:
        """Make the user matching an email or username the active session"""
        if not identifier:
            raise AccountError("Please fill in credentials.")

        wanted = identifier.lower()
        users = storage.load_users(self.store)
        found = next((user for user in users
                      if (user.email and user.email.lower() == wanted)
                      or (user.username and user.username.lower() == wanted)), None)
        if found is None:
            raise AccountError("Account not found. Please register first.")

        storage.save_session(self.store, found)
        logger.info(f"User {found.username} logged in")
        return self.start()

    def logout(self):
        """Clear the session pointer; the directory record stays"""
        if self.user is not None:
            logger.info(f"User {self.user.username} logged out")
        storage.clear_session(self.store)
        self.user = None
        self.session_state = SessionState.LOGGED_OUT

    # ---- profile mutations ----

    def update_user(self, **updates) -> UserProfile:
        """
        Merge field updates into the active user and persist them

        Args:
            **updates: UserProfile field values to replace

        Returns:
            The reconciled active user
        """
        user = self.require_user()
        if "id" in updates and updates["id"] != user.id:
            raise AccountError("User id cannot be changed")

        users = self._users_for_update()
        updated = replace(user, **updates)
        storage.save_session(self.store, updated)

        for i, existing in enumerate(users):
            if existing.id == updated.id:
                users[i] = updated
                storage.save_users(self.store, users)
                break
        else:
            logger.warning(f"User {updated.id} missing from directory, only session updated")

        return self.start()

    def update_settings(self, account_size: Optional[float] = None, risk_percentage: Optional[float] = None,
                        account_type: Optional[AccountType] = None,
                        notifications: Optional[NotificationPrefs] = None,
                        username: Optional[str] = None) -> UserProfile:
        user = self.require_user()
        current = user.settings
        try:
            settings = UserSettings(
                account_size=current.account_size if account_size is None else float(account_size),
                risk_percentage=current.risk_percentage if risk_percentage is None else float(risk_percentage),
                account_type=account_type or current.account_type,
                notifications=notifications or current.notifications,
            )
        except ValueError as e:
            raise AccountError(str(e)) from e

        updates = {"settings": settings}
        if username:
            updates["username"] = username.strip()
        logger.info(f"Settings updated for {user.username}: {settings.to_dict()}")
        return self.update_user(**updates)

    # ---- signals ----

    def check_quota(self) -> Optional[str]:
        """User-facing message when the plan's signal allowance is used up, else None"""
        user = self.require_user()
        if user.plan is PlanTier.FREE and user.signals_used_lifetime >= config.FREE_SIGNAL_LIMIT:
            return (f"Free limit reached ({user.signals_used_lifetime}/{config.FREE_SIGNAL_LIMIT}). "
                    f"Upgrade your plan to continue.")
        return None

    def record_signal(self, signal: TradeSignal) -> UserProfile:
        """Count a generated signal and log it as a pending trade"""
        user = self.require_user()
        lifetime = user.signals_used_lifetime + 1 if user.plan is PlanTier.FREE else user.signals_used_lifetime
        return self.update_user(
            signals_used_lifetime=lifetime,
            signals_used_today=user.signals_used_today + 1,
            trade_history=journal.add_trade(user.trade_history, build_trade_log(signal)),
        )

    # ---- journal ----

    def set_trade_status(self, trade_id: str, status: TradeStatus, pnl: Optional[float] = None,
                         exit_price: Optional[float] = None) -> UserProfile:
        user = self.require_user()
        try:
            history = journal.set_trade_status(user.trade_history, trade_id, status, pnl, exit_price)
        except KeyError as e:
            raise AccountError(f"Trade {trade_id} not found") from e
        return self.update_user(trade_history=history)

    def delete_trade(self, trade_id: str) -> UserProfile:
        user = self.require_user()
        return self.update_user(trade_history=journal.delete_trade(user.trade_history, trade_id))

    def add_journal_entry(self, pair: str, direction: Direction, result: TradeStatus, pnl_amount: float,
                          lot_size: float = 0.0, setup_type: str = "", notes: str = "") -> UserProfile:
        """Manual journal entry; available on Advanced and Pro plans. Syncs the account size."""
        user = self.require_user()
        if user.plan not in (PlanTier.ADVANCED, PlanTier.PRO):
            raise AccountError("The manual journal requires an Advanced or Pro plan")
        try:
            entries = journal.add_journal_entry(user.journal_entries, user.settings.account_size, pair, direction,
                                                result, pnl_amount, lot_size, setup_type, notes)
            settings = replace(user.settings, account_size=entries[0].account_balance_after)
        except ValueError as e:
            raise AccountError(str(e)) from e
        return self.update_user(journal_entries=entries, settings=settings)

    def delete_journal_entry(self, entry_id: str) -> UserProfile:
        user = self.require_user()
        if not any(entry.id == entry_id for entry in user.journal_entries):
            raise AccountError(f"Journal entry {entry_id} not found")
        return self.update_user(journal_entries=journal.delete_journal_entry(user.journal_entries, entry_id))

    def journal_summary(self) -> journal.JournalStats:
        """Balance, growth and win rate of the manual journal"""
        user = self.require_user()
        entries = user.journal_entries
        return journal.journal_stats(entries, journal.starting_balance(entries, user.settings.account_size))

    # ---- administration ----

    def set_plan(self, user_id: str, plan: PlanTier, expiry: Optional[str] = None) -> UserProfile:
        """
        Override a user's plan in the directory

        Args:
            user_id: Target user id
            plan: New plan tier
            expiry: Expiry date or timestamp (ISO-8601); required for paid plans, ignored for Free

        Returns:
            The updated directory record
        """
        if plan.is_paid:
            if not expiry:
                raise AccountError("Expiration date required for paid plans.")
            try:
                expiry_iso = to_iso(parse_iso(expiry))
            except ValueError as e:
                raise AccountError(f"Invalid expiration date: {expiry}") from e
        else:
            expiry_iso = None

        users = self._users_for_update()
        for i, user in enumerate(users):
            if user.id == user_id:
                updated = replace(user, plan=plan, plan_expiry_date=expiry_iso)
                users[i] = updated
                break
        else:
            raise AccountError(f"User {user_id} not found")

        storage.save_users(self.store, users)
        logger.warning(f"Override: User {updated.username} -> {plan.value} (expires {expiry_iso or 'never'})")

        if self.user is not None and self.user.id == user_id:
            self.start()
        return updated

    def list_users(self, user_filter: UserFilter = UserFilter.ALL, search: str = "") -> List[UserProfile]:
        now = self.clock()
        needle = search.lower()

        def matches(user: UserProfile) -> bool:
            if needle and not ((user.email and needle in user.email.lower())
                               or (user.username and needle in user.username.lower())):
                return False
            if user_filter is UserFilter.FREE:
                return user.plan is PlanTier.FREE
            if user_filter is UserFilter.PAID:
                return user.plan.is_paid
            if user_filter is UserFilter.EXPIRING:
                expiry = user.expiry_moment()
                if expiry is None:
                    return False
                remaining = expiry - now
                return timedelta(0) < remaining < timedelta(days=config.EXPIRING_SOON_DAYS)
            return True

        return [user for user in storage.load_users(self.store) if matches(user)]

    def plan_stats(self) -> Dict[str, int]:
        counts = {tier.value: 0 for tier in PlanTier}
        for user in storage.load_users(self.store):
            counts[user.plan.value] += 1
        return counts
