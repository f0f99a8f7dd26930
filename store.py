# store.py
"""Local key-value storage for the session and the user directory"""

import json
import logging
import os
import tempfile
from typing import Dict, List, Optional

from models import UserProfile
from errors import StoreParseError
import config

logger = logging.getLogger(__name__)


class MemoryStore:
    """In-memory key-value store"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str):
        self._items[key] = value

    def remove_item(self, key: str):
        self._items.pop(key, None)


class JsonFileStore:
    """Key-value store persisted as a single JSON object on disk"""

    def __init__(self, path: str):
        self.path = path

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read store file {self.path}: {e} - starting empty")
            return {}
        if not isinstance(data, dict):
            logger.error(f"Store file {self.path} does not hold a JSON object - starting empty")
            return {}
        return data

    def _write_all(self, items: Dict[str, str]):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        # Write to a temp file then rename so a crash never leaves half a file
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".store-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str):
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove_item(self, key: str):
        items = self._read_all()
        if key in items:
            del items[key]
            self._write_all(items)


def _parse_blob(key: str, raw: str):
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise StoreParseError(key, e) from e


def read_session(store) -> Optional[UserProfile]:
    """
    Read the active session

    Raises:
        StoreParseError: The stored blob is not a valid user profile
    """
    raw = store.get_item(config.SESSION_KEY)
    if raw is None:
        return None
    data = _parse_blob(config.SESSION_KEY, raw)
    if data is None:
        return None
    try:
        return UserProfile.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StoreParseError(config.SESSION_KEY, e) from e


def read_users(store) -> List[UserProfile]:
    """
    Read the whole user directory, failing on any unreadable record

    Raises:
        StoreParseError: The stored blob is not a list of user profiles
    """
    raw = store.get_item(config.USERS_KEY)
    if raw is None:
        return []
    data = _parse_blob(config.USERS_KEY, raw)
    if not isinstance(data, list):
        raise StoreParseError(config.USERS_KEY, TypeError(f"expected a list, got {type(data).__name__}"))
    try:
        return [UserProfile.from_dict(item) for item in data]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StoreParseError(config.USERS_KEY, e) from e


def load_session(store) -> Optional[UserProfile]:
    """Active session, or None when absent or corrupted"""
    try:
        return read_session(store)
    except StoreParseError as e:
        logger.warning(f"{e} - treating session as absent")
        return None


def load_users(store) -> List[UserProfile]:
    """
    User directory for reading

    Records are parsed one by one and unreadable ones are skipped. An
    unreadable directory reads as empty. Never write the result back; use
    read_users() before saving so skipped records are not lost.
    """
    raw = store.get_item(config.USERS_KEY)
    if raw is None:
        return []
    try:
        data = _parse_blob(config.USERS_KEY, raw)
    except StoreParseError as e:
        logger.warning(f"{e} - treating user directory as empty")
        return []
    if not isinstance(data, list):
        logger.warning("User directory is not a list - treating it as empty")
        return []

    users = []
    for position, item in enumerate(data):
        try:
            users.append(UserProfile.from_dict(item))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Skipping unreadable user record #{position}: {e}")
    return users


def save_session(store, user: UserProfile):
    store.set_item(config.SESSION_KEY, json.dumps(user.to_dict()))


def save_users(store, users: List[UserProfile]):
    store.set_item(config.USERS_KEY, json.dumps([user.to_dict() for user in users]))


def clear_session(store):
    store.remove_item(config.SESSION_KEY)
