# session_reconciler.py
"""Keep the cached session in step with the user directory and apply plan expiry"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional

from models import PlanTier, UserProfile, utc_now
from errors import StoreParseError
import store as storage

logger = logging.getLogger(__name__)


class SessionState(Enum):
    LOGGED_OUT = "A"  # No session
    ORPHANED = "B"  # Session without a directory record
    SYNCED = "C"  # Directory record adopted as the session
    DOWNGRADED = "D"  # Expired paid plan dropped to Free


@dataclass
class ReconcileResult:
    state: SessionState
    session: Optional[UserProfile]
    users: List[UserProfile]
    directory_changed: bool = False


def downgrade_expired(user: UserProfile) -> UserProfile:
    """Copy of the user on the Free plan with no expiry"""
    return replace(user, plan=PlanTier.FREE, plan_expiry_date=None)


def reconcile(cached_session: Optional[UserProfile], users: List[UserProfile],
              now: Optional[datetime] = None) -> ReconcileResult:
    """
    Decide the authoritative session

    The directory record always wins over the cached copy. A paid plan whose
    expiry is before now is downgraded to Free in the directory as well.
    Inputs are never mutated; the returned user list is a new list.

    Args:
        cached_session: Session read from storage, or None
        users: User directory (unique ids)
        now: Comparison time (aware); defaults to the current UTC time

    Returns:
        ReconcileResult describing the new session and directory
    """
    if cached_session is None:
        return ReconcileResult(SessionState.LOGGED_OUT, None, list(users))

    now = now or utc_now()
    index = next((i for i, user in enumerate(users) if user.id == cached_session.id), None)

    if index is None:
        logger.warning(f"Session user {cached_session.id} ({cached_session.username}) "
                       f"has no directory record, keeping cached session")
        return ReconcileResult(SessionState.ORPHANED, cached_session, list(users))

    master = users[index]
    if master.is_expired(now):
        downgraded = downgrade_expired(master)
        updated_users = list(users)
        updated_users[index] = downgraded
        logger.info(f"Plan {master.plan.value} for {master.username} expired at {master.plan_expiry_date}, "
                    f"downgraded to {PlanTier.FREE.value}")
        return ReconcileResult(SessionState.DOWNGRADED, downgraded, updated_users, directory_changed=True)

    return ReconcileResult(SessionState.SYNCED, master, list(users))


def reconcile_store(store, now: Optional[datetime] = None) -> ReconcileResult:
    """
    Reconcile the stored session against the stored directory and persist the outcome

    Corrupted values are treated as absent. After this call the session key
    and the matching directory entry hold the same record.
    """
    result = reconcile(storage.load_session(store), storage.load_users(store), now)

    if result.directory_changed:
        try:
            storage.read_users(store)
        except StoreParseError as e:
            logger.error(f"{e} - downgrade kept in the session only, directory left untouched")
        else:
            storage.save_users(store, result.users)
    if result.state in (SessionState.SYNCED, SessionState.DOWNGRADED):
        storage.save_session(store, result.session)

    logger.debug(f"Session reconciled: state {result.state.name}")
    return result
