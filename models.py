# models.py
"""Data models for users, trade signals and journal records"""

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

import config

logger = logging.getLogger(__name__)


class PlanTier(Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    ADVANCED = "ADVANCED"
    PRO = "PRO"

    @property
    def is_paid(self) -> bool:
        return self is not PlanTier.FREE


class AccountType(Enum):
    STANDARD = "Standard"
    RAW = "Raw"
    PRO = "Pro"


class Direction(Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        """+1 when targets sit above entry, -1 when below"""
        return 1 if self is Direction.BUY else -1


class TradeStatus(Enum):
    WIN = "WIN"
    LOSS = "LOSS"
    BE = "BE"
    PENDING = "PENDING"


class AssetClass(Enum):
    METAL = "METAL"
    JPY_CROSS = "JPY_CROSS"
    STANDARD_FX = "STANDARD_FX"


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format an aware datetime as an ISO-8601 UTC string with a Z suffix"""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime

    Accepts a trailing 'Z' and plain dates (YYYY-MM-DD). Naive values are
    taken to be UTC.
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass
class NotificationPrefs:
    signals: bool = True
    market_alerts: bool = True
    updates: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NotificationPrefs":
        # Legacy records predate notifications
        if not data:
            return cls()
        return cls(
            signals=bool(data.get("signals", True)),
            market_alerts=bool(data.get("marketAlerts", True)),
            updates=bool(data.get("updates", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signals": self.signals,
            "marketAlerts": self.market_alerts,
            "updates": self.updates,
        }


@dataclass
class UserSettings:
    """Account size and risk tolerance used for lot sizing"""
    account_size: float
    risk_percentage: float
    account_type: AccountType = AccountType.STANDARD
    notifications: NotificationPrefs = field(default_factory=NotificationPrefs)

    def __post_init__(self):
        if not self.account_size > 0:
            raise ValueError(f"Account size must be positive, got {self.account_size}")
        if not 0 < self.risk_percentage <= 100:
            raise ValueError(f"Risk percentage must be in (0, 100], got {self.risk_percentage}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserSettings":
        return cls(
            account_size=float(data["accountSize"]),
            risk_percentage=float(data["riskPercentage"]),
            account_type=AccountType(data.get("accountType", AccountType.STANDARD.value)),
            notifications=NotificationPrefs.from_dict(data.get("notifications")),
        )

    @classmethod
    def default(cls) -> "UserSettings":
        return cls.from_dict(copy.deepcopy(config.DEFAULT_SETTINGS))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accountSize": self.account_size,
            "riskPercentage": self.risk_percentage,
            "accountType": self.account_type.value,
            "notifications": self.notifications.to_dict(),
        }


@dataclass
class TradeLog:
    """Journal record of a generated signal or a manually logged trade"""
    id: str
    date: str
    pair: str
    type: Direction
    entry: float
    exit: float = 0.0
    pnl: float = 0.0
    status: TradeStatus = TradeStatus.PENDING
    timeframe: Optional[str] = None
    reasoning: Optional[str] = None
    sl: Optional[float] = None
    tp1: Optional[float] = None
    tp2: Optional[float] = None
    strategy: Optional[str] = None
    confluence: List[str] = field(default_factory=list)
    emotions: Optional[str] = None
    notes: Optional[str] = None
    rr: Optional[float] = None

    _OPTIONAL = ("timeframe", "reasoning", "sl", "tp1", "tp2", "strategy", "emotions", "notes", "rr")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeLog":
        return cls(
            id=data["id"],
            date=data["date"],
            pair=data["pair"],
            type=Direction(data["type"]),
            entry=float(data.get("entry", 0)),
            exit=float(data.get("exit", 0) or 0),
            pnl=float(data.get("pnl", 0) or 0),
            status=TradeStatus(data.get("status", TradeStatus.PENDING.value)),
            confluence=list(data.get("confluence") or []),
            **{name: data.get(name) for name in cls._OPTIONAL},
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "date": self.date,
            "pair": self.pair,
            "type": self.type.value,
            "entry": self.entry,
            "exit": self.exit,
            "pnl": self.pnl,
            "status": self.status.value,
        }
        for name in self._OPTIONAL:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        if self.confluence:
            result["confluence"] = list(self.confluence)
        return result


@dataclass
class JournalEntry:
    """Manual journal entry tracking account growth"""
    id: str
    date: str
    pair: str
    direction: Direction
    setup_type: str
    lot_size: float
    result: TradeStatus
    pnl_amount: float
    account_balance_after: float
    growth_percentage: float
    notes: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalEntry":
        return cls(
            id=data["id"],
            date=data["date"],
            pair=data["pair"],
            direction=Direction(data["direction"]),
            setup_type=data.get("setupType", "Manual"),
            lot_size=float(data.get("lotSize", 0)),
            result=TradeStatus(data["result"]),
            pnl_amount=float(data.get("pnlAmount", 0)),
            account_balance_after=float(data["accountBalanceAfter"]),
            growth_percentage=float(data.get("growthPercentage", 0)),
            notes=data.get("notes", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "pair": self.pair,
            "direction": self.direction.value,
            "setupType": self.setup_type,
            "lotSize": self.lot_size,
            "result": self.result.value,
            "pnlAmount": self.pnl_amount,
            "accountBalanceAfter": self.account_balance_after,
            "growthPercentage": self.growth_percentage,
            "notes": self.notes,
        }


@dataclass
class UserProfile:
    """Stored user record; the directory holds one per id"""
    id: str
    username: str
    settings: UserSettings
    email: Optional[str] = None
    plan: PlanTier = PlanTier.FREE
    plan_expiry_date: Optional[str] = None
    signals_used_lifetime: int = 0
    signals_used_today: int = 0
    join_date: str = ""
    id_theme: str = config.DEFAULT_ID_THEME
    last_device: Optional[str] = None
    trade_history: List[TradeLog] = field(default_factory=list)
    journal_entries: List[JournalEntry] = field(default_factory=list)

    def __post_init__(self):
        if self.signals_used_lifetime < 0 or self.signals_used_today < 0:
            raise ValueError("Signal counters cannot be negative")
        # Free accounts never carry an expiry
        if self.plan is PlanTier.FREE:
            self.plan_expiry_date = None

    def expiry_moment(self) -> Optional[datetime]:
        """Parsed plan expiry, or None when there is none or it cannot be read"""
        if not self.plan.is_paid or not self.plan_expiry_date:
            return None
        try:
            return parse_iso(self.plan_expiry_date)
        except (AttributeError, ValueError):
            # Unreadable expiry: the plan never expires
            logger.warning(f"User {self.id} has an unreadable plan expiry {self.plan_expiry_date!r}, ignoring it")
            return None

    def is_expired(self, now: datetime) -> bool:
        """True when a paid plan's expiry lies strictly before now"""
        expiry = self.expiry_moment()
        return expiry is not None and expiry < now

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=data["id"],
            username=data.get("username", ""),
            email=data.get("email"),
            plan=PlanTier(str(data.get("plan") or PlanTier.FREE.value).upper()),
            plan_expiry_date=data.get("planExpiryDate") or None,
            signals_used_lifetime=int(data.get("signalsUsedLifetime", 0)),
            signals_used_today=int(data.get("signalsUsedToday", 0)),
            join_date=data.get("joinDate", ""),
            settings=UserSettings.from_dict(data["settings"]),
            id_theme=data.get("idTheme", config.DEFAULT_ID_THEME),
            last_device=data.get("lastDevice"),
            trade_history=[TradeLog.from_dict(item) for item in data.get("tradeHistory") or []],
            journal_entries=[JournalEntry.from_dict(item) for item in data.get("journalEntries") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "username": self.username,
            "plan": self.plan.value,
            "signalsUsedLifetime": self.signals_used_lifetime,
            "signalsUsedToday": self.signals_used_today,
            "joinDate": self.join_date,
            "settings": self.settings.to_dict(),
            "idTheme": self.id_theme,
            "tradeHistory": [trade.to_dict() for trade in self.trade_history],
            "journalEntries": [entry.to_dict() for entry in self.journal_entries],
        }
        if self.email is not None:
            result["email"] = self.email
        if self.plan_expiry_date:
            result["planExpiryDate"] = self.plan_expiry_date
        if self.last_device is not None:
            result["lastDevice"] = self.last_device
        return result


@dataclass
class AnalysisResult:
    """Structured chart analysis returned by the vision model"""
    pair: str
    timeframe: str
    direction: str  # Raw value, validated by the normalizer
    strategy: str
    entry: float
    stop_loss: float
    reasoning: str
    is_setup_valid: bool
    take_profit1: Optional[float] = None
    take_profit2: Optional[float] = None
    market_structure: List[str] = field(default_factory=list)

    @classmethod
    def failed(cls, reasoning: str) -> "AnalysisResult":
        """Result returned when the analysis could not be obtained"""
        return cls(
            pair="ERROR",
            timeframe="N/A",
            direction="N/A",
            strategy="System Error",
            entry=0.0,
            stop_loss=0.0,
            reasoning=reasoning,
            is_setup_valid=False,
        )


@dataclass
class TradeSignal:
    """Fully computed trade recommendation"""
    id: str
    timestamp: str
    pair: str
    timeframe: str
    direction: Direction
    strategy: str
    entry: float
    stop_loss: float
    take_profit1: float
    take_profit2: float
    stop_loss_pips: int
    take_profit_pips: float
    lot_size: float
    risk_amount: float
    reward_at_tp1: float
    reward_at_tp2: float
    reasoning: str
    market_structure: List[str] = field(default_factory=list)

    def __str__(self):
        return (f"{self.pair} {self.direction.value} @ {self.entry} | SL {self.stop_loss} ({self.stop_loss_pips} pips) | "
                f"TP1 {self.take_profit1} | TP2 {self.take_profit2} | Lots {self.lot_size} | Risk {self.risk_amount}")
