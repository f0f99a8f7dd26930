"""
Application state tests: signup/login, the shared update contract, quotas and plan overrides.
"""

import json
from datetime import timedelta

import pytest

from account_manager import AppState, UserFilter
from errors import AccountError
from models import AccountType, Direction, PlanTier, TradeStatus, to_iso
from session_reconciler import SessionState
from signal_normalizer import normalize_signal
import config
import store as storage


@pytest.fixture
def app(memory_store, now):
    state = AppState(memory_store, clock=lambda: now)
    state.start()
    return state


def stored_pair(store, user_id):
    """Session blob and the matching directory blob."""
    session = json.loads(store.get_item(config.SESSION_KEY))
    directory = json.loads(store.get_item(config.USERS_KEY))
    return session, next(u for u in directory if u["id"] == user_id)


class TestSignupAndLogin:

    def test_signup_creates_free_account(self, app, memory_store):
        user = app.signup("Sniper", "sniper@example.com", device="Desktop PC")

        assert app.is_logged_in
        assert user.plan is PlanTier.FREE
        assert user.plan_expiry_date is None
        assert user.signals_used_lifetime == 0
        assert user.settings.account_size == 1000
        assert user.settings.risk_percentage == 1
        assert user.settings.account_type is AccountType.STANDARD
        assert user.last_device == "Desktop PC"
        session, record = stored_pair(memory_store, user.id)
        assert session == record

    @pytest.mark.parametrize("username,email", [
        ("", "a@b.com"),
        ("name", ""),
        ("name", "no-at-sign"),
    ])
    def test_signup_validation(self, app, username, email):
        with pytest.raises(AccountError):
            app.signup(username, email)

    def test_duplicate_email_rejected(self, app):
        app.signup("first", "Same@Example.com")
        with pytest.raises(AccountError, match="already registered"):
            app.signup("second", "same@example.com")

    def test_login_by_username_or_email(self, app):
        created = app.signup("Sniper", "sniper@example.com")
        app.logout()
        assert not app.is_logged_in

        assert app.login("SNIPER").id == created.id
        app.logout()
        assert app.login("Sniper@Example.com").id == created.id

    def test_unknown_login(self, app):
        with pytest.raises(AccountError, match="not found"):
            app.login("nobody")

    def test_logout_keeps_directory_record(self, app, memory_store):
        user = app.signup("Sniper", "sniper@example.com")
        app.logout()

        assert memory_store.get_item(config.SESSION_KEY) is None
        assert [u.id for u in storage.load_users(memory_store)] == [user.id]
        assert app.session_state is SessionState.LOGGED_OUT


class TestUpdateUser:

    def test_update_written_to_session_and_directory(self, app, memory_store):
        user = app.signup("Sniper", "sniper@example.com")
        app.update_user(id_theme="emerald", signals_used_today=3)

        session, record = stored_pair(memory_store, user.id)
        assert session == record
        assert session["idTheme"] == "emerald"
        assert app.user.signals_used_today == 3

    def test_id_is_immutable(self, app):
        app.signup("Sniper", "sniper@example.com")
        with pytest.raises(AccountError):
            app.update_user(id="other")

    def test_requires_login(self, app):
        with pytest.raises(AccountError, match="Not logged in"):
            app.update_user(id_theme="rose")

    def test_orphaned_session_only_updates_session(self, memory_store, make_user, now):
        storage.save_session(memory_store, make_user(user_id="ghost"))
        app = AppState(memory_store, clock=lambda: now)
        app.start()

        app.update_user(signals_used_today=1)

        assert app.session_state is SessionState.ORPHANED
        assert storage.load_session(memory_store).signals_used_today == 1
        assert storage.load_users(memory_store) == []

    def test_update_settings(self, app, memory_store):
        user = app.signup("Sniper", "sniper@example.com")
        app.update_settings(account_size=5000, risk_percentage=2, account_type=AccountType.RAW, username="Sniper2")

        assert app.user.username == "Sniper2"
        assert app.user.settings.account_size == 5000
        assert app.user.settings.account_type is AccountType.RAW
        session, record = stored_pair(memory_store, user.id)
        assert session == record

    @pytest.mark.parametrize("field,value", [
        ("account_size", 0),
        ("account_size", -10),
        ("risk_percentage", 0),
        ("risk_percentage", 150),
    ])
    def test_invalid_settings_rejected(self, app, field, value):
        app.signup("Sniper", "sniper@example.com")
        with pytest.raises(AccountError):
            app.update_settings(**{field: value})
        assert app.user.settings.account_size == 1000


class TestSignals:

    def test_free_signal_counts_towards_lifetime(self, app, make_analysis):
        app.signup("Sniper", "sniper@example.com")
        signal = normalize_signal(make_analysis(), app.user.settings)

        user = app.record_signal(signal)

        assert user.signals_used_lifetime == 1
        assert user.signals_used_today == 1
        assert user.trade_history[0].id == signal.id
        assert user.trade_history[0].status is TradeStatus.PENDING

    def test_history_newest_first(self, app, make_analysis):
        app.signup("Sniper", "sniper@example.com")
        first = normalize_signal(make_analysis(), app.user.settings)
        second = normalize_signal(make_analysis(pair="EURUSD", entry=1.1, stop_loss=1.099), app.user.settings)
        app.record_signal(first)
        app.record_signal(second)

        assert [t.id for t in app.user.trade_history] == [second.id, first.id]

    def test_paid_plan_lifetime_not_counted(self, app, make_analysis, now):
        user = app.signup("Sniper", "sniper@example.com")
        app.set_plan(user.id, PlanTier.PRO, to_iso(now + timedelta(days=30)))
        signal = normalize_signal(make_analysis(), app.user.settings)

        updated = app.record_signal(signal)

        assert updated.signals_used_lifetime == 0
        assert updated.signals_used_today == 1

    def test_free_quota(self, app):
        app.signup("Sniper", "sniper@example.com")
        assert app.check_quota() is None

        app.update_user(signals_used_lifetime=config.FREE_SIGNAL_LIMIT)
        message = app.check_quota()
        assert message is not None
        assert "Upgrade" in message

    def test_paid_plans_unlimited(self, app, now):
        user = app.signup("Sniper", "sniper@example.com")
        app.update_user(signals_used_lifetime=100)
        app.set_plan(user.id, PlanTier.BASIC, to_iso(now + timedelta(days=1)))

        assert app.check_quota() is None


class TestJournal:

    def test_set_trade_status(self, app, make_analysis):
        app.signup("Sniper", "sniper@example.com")
        signal = normalize_signal(make_analysis(), app.user.settings)
        app.record_signal(signal)

        app.set_trade_status(signal.id, TradeStatus.WIN, pnl=20.0, exit_price=2025.5)

        trade = app.user.trade_history[0]
        assert trade.status is TradeStatus.WIN
        assert trade.pnl == 20.0
        assert trade.exit == 2025.5

    def test_set_status_unknown_trade(self, app):
        app.signup("Sniper", "sniper@example.com")
        with pytest.raises(AccountError):
            app.set_trade_status("missing", TradeStatus.LOSS)

    def test_delete_trade(self, app, make_analysis):
        app.signup("Sniper", "sniper@example.com")
        signal = normalize_signal(make_analysis(), app.user.settings)
        app.record_signal(signal)

        assert app.delete_trade(signal.id).trade_history == []

    def test_manual_journal_requires_advanced_or_pro(self, app):
        app.signup("Sniper", "sniper@example.com")
        with pytest.raises(AccountError):
            app.add_journal_entry("XAUUSD", Direction.BUY, TradeStatus.WIN, 50.0)

    def test_manual_journal_syncs_account_size(self, app, now):
        user = app.signup("Sniper", "sniper@example.com")
        app.set_plan(user.id, PlanTier.PRO, to_iso(now + timedelta(days=30)))

        app.add_journal_entry("xauusd", Direction.BUY, TradeStatus.WIN, 50.0, lot_size=0.2)

        entry = app.user.journal_entries[0]
        assert entry.pair == "XAUUSD"
        assert entry.account_balance_after == 1050.0
        assert entry.growth_percentage == 5.0
        assert app.user.settings.account_size == 1050.0

    def test_manual_journal_summary_and_delete(self, app, now):
        user = app.signup("Sniper", "sniper@example.com")
        app.set_plan(user.id, PlanTier.ADVANCED, to_iso(now + timedelta(days=30)))
        app.add_journal_entry("XAUUSD", Direction.BUY, TradeStatus.WIN, 50.0)
        app.add_journal_entry("EURUSD", Direction.SELL, TradeStatus.LOSS, -20.0)

        stats = app.journal_summary()
        assert stats.current_balance == 1030.0
        assert stats.growth_percentage == 3.0
        assert (stats.wins, stats.losses) == (1, 1)

        newest = app.user.journal_entries[0]
        app.delete_journal_entry(newest.id)
        assert [entry.pair for entry in app.user.journal_entries] == ["XAUUSD"]
        assert app.journal_summary().current_balance == 1050.0

    def test_delete_unknown_journal_entry(self, app):
        app.signup("Sniper", "sniper@example.com")
        with pytest.raises(AccountError, match="not found"):
            app.delete_journal_entry("missing")


class TestAdministration:

    def test_paid_plan_requires_expiry(self, app):
        user = app.signup("Sniper", "sniper@example.com")
        with pytest.raises(AccountError, match="Expiration date required"):
            app.set_plan(user.id, PlanTier.PRO)

    def test_invalid_expiry(self, app):
        user = app.signup("Sniper", "sniper@example.com")
        with pytest.raises(AccountError):
            app.set_plan(user.id, PlanTier.PRO, "next tuesday")

    def test_unknown_user(self, app):
        with pytest.raises(AccountError):
            app.set_plan("missing", PlanTier.FREE)

    def test_override_refreshes_active_session(self, app, memory_store):
        user = app.signup("Sniper", "sniper@example.com")
        app.set_plan(user.id, PlanTier.ADVANCED, "2026-03-01")

        assert app.user.plan is PlanTier.ADVANCED
        assert app.user.plan_expiry_date == "2026-03-01T00:00:00.000Z"
        session, record = stored_pair(memory_store, user.id)
        assert session == record

    def test_free_override_clears_expiry(self, app, now):
        user = app.signup("Sniper", "sniper@example.com")
        app.set_plan(user.id, PlanTier.PRO, to_iso(now + timedelta(days=10)))
        updated = app.set_plan(user.id, PlanTier.FREE, to_iso(now + timedelta(days=10)))

        assert updated.plan_expiry_date is None
        assert app.user.plan is PlanTier.FREE

    def test_past_expiry_downgrades_on_next_reconcile(self, app, now):
        user = app.signup("Sniper", "sniper@example.com")
        app.set_plan(user.id, PlanTier.PRO, to_iso(now - timedelta(seconds=1)))

        assert app.session_state is SessionState.DOWNGRADED
        assert app.user.plan is PlanTier.FREE
        assert app.list_users(UserFilter.FREE)[0].id == user.id

    def test_restart_downgrades_expired_plan(self, memory_store, now):
        first_run = AppState(memory_store, clock=lambda: now)
        first_run.start()
        user = first_run.signup("Sniper", "sniper@example.com")
        first_run.set_plan(user.id, PlanTier.PRO, to_iso(now + timedelta(days=1)))

        later = now + timedelta(days=2)
        second_run = AppState(memory_store, clock=lambda: later)
        restored = second_run.start()

        assert second_run.session_state is SessionState.DOWNGRADED
        assert restored.plan is PlanTier.FREE
        assert storage.load_users(memory_store)[0].plan is PlanTier.FREE

    def test_list_users_filters(self, app, now):
        free = app.signup("freebie", "free@example.com")
        paid = app.signup("whale", "whale@fund.com")
        expiring = app.signup("scalper", "fast@fingers.io")
        app.set_plan(paid.id, PlanTier.PRO, to_iso(now + timedelta(days=60)))
        app.set_plan(expiring.id, PlanTier.BASIC, to_iso(now + timedelta(days=2)))

        def ids(user_filter, search=""):
            return {u.id for u in app.list_users(user_filter, search)}

        assert ids(UserFilter.ALL) == {free.id, paid.id, expiring.id}
        assert ids(UserFilter.FREE) == {free.id}
        assert ids(UserFilter.PAID) == {paid.id, expiring.id}
        assert ids(UserFilter.EXPIRING) == {expiring.id}
        assert ids(UserFilter.ALL, "FUND") == {paid.id}

    def test_plan_stats(self, app, now):
        app.signup("a", "a@example.com")
        b = app.signup("b", "b@example.com")
        app.set_plan(b.id, PlanTier.ADVANCED, to_iso(now + timedelta(days=5)))

        assert app.plan_stats() == {"FREE": 1, "BASIC": 0, "ADVANCED": 1, "PRO": 0}


class TestDamagedDirectory:

    @pytest.fixture
    def stored_users(self, memory_store, make_user):
        """Directory with a healthy user and a Pro user whose expiry cannot be read."""
        healthy = make_user("a", "alice")
        odd_expiry = make_user("b", "bob", plan=PlanTier.PRO, plan_expiry_date="next month")
        memory_store.set_item(config.USERS_KEY, json.dumps([healthy.to_dict(), odd_expiry.to_dict()]))
        return memory_store

    def test_signup_keeps_existing_users(self, stored_users, now):
        app = AppState(stored_users, clock=lambda: now)
        app.start()
        carol = app.signup("carol", "c@x.com")

        ids = [u["id"] for u in json.loads(stored_users.get_item(config.USERS_KEY))]
        assert ids == ["a", "b", carol.id]

    def test_unreadable_expiry_never_expires(self, stored_users, now):
        app = AppState(stored_users, clock=lambda: now)
        user = app.login("bob")

        assert app.session_state is SessionState.SYNCED
        assert user.plan is PlanTier.PRO
        assert user.plan_expiry_date == "next month"

    def test_lower_case_plan_accepted(self, memory_store, make_user):
        record = make_user("a", "alice").to_dict()
        record["plan"] = "basic"
        memory_store.set_item(config.USERS_KEY, json.dumps([record]))

        assert storage.read_users(memory_store)[0].plan is PlanTier.BASIC

    def test_unreadable_record_is_never_overwritten(self, memory_store, make_user, now):
        broken = make_user("b", "bob").to_dict()
        broken["settings"]["accountType"] = "Cent"
        raw = json.dumps([make_user("a", "alice").to_dict(), broken])
        memory_store.set_item(config.USERS_KEY, raw)
        app = AppState(memory_store, clock=lambda: now)
        app.start()

        # Readers skip the bad record, writers refuse to run
        assert [user.id for user in app.list_users()] == ["a"]
        with pytest.raises(AccountError, match="corrupted"):
            app.signup("carol", "c@x.com")
        with pytest.raises(AccountError, match="corrupted"):
            app.set_plan("a", PlanTier.BASIC, "2026-03-01")
        app.login("alice")
        with pytest.raises(AccountError, match="corrupted"):
            app.update_settings(risk_percentage=2)

        assert memory_store.get_item(config.USERS_KEY) == raw
