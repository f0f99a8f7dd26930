"""
Pytest configuration and shared fixtures for trade vision tests.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from models import AnalysisResult, PlanTier, UserProfile, UserSettings  # noqa: E402
from store import MemoryStore  # noqa: E402

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    """$1,000 account risking 1% per trade."""
    return UserSettings(account_size=1000, risk_percentage=1)


@pytest.fixture
def make_user():
    """Factory for user profiles with sensible defaults."""
    def _make(user_id="u-1", username="trader", plan=PlanTier.FREE, **kwargs):
        kwargs.setdefault("settings", UserSettings(account_size=1000, risk_percentage=1))
        kwargs.setdefault("email", f"{username}@example.com")
        kwargs.setdefault("join_date", "2025-12-01T00:00:00.000Z")
        return UserProfile(id=user_id, username=username, plan=plan, **kwargs)
    return _make


@pytest.fixture
def make_analysis():
    """Factory for valid analysis results."""
    def _make(pair="XAUUSD", direction="BUY", entry=2024.50, stop_loss=2024.00, **kwargs):
        kwargs.setdefault("timeframe", "15m")
        kwargs.setdefault("strategy", "Bullish Order Block")
        kwargs.setdefault("reasoning", "Sweep of the Asian low into a bullish order block")
        kwargs.setdefault("is_setup_valid", True)
        return AnalysisResult(pair=pair, direction=direction, entry=entry, stop_loss=stop_loss, **kwargs)
    return _make


@pytest.fixture
def memory_store():
    return MemoryStore()
