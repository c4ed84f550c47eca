"""Explicit handle on the active user session."""

from typing import Optional

from .constants import SESSION_KEY
from .logger import get_logger
from .models import UserProfile
from .storage import PersistentStore, get_user

logger = get_logger()


class SessionContext:
    """
    Holds only the active user id in the store.

    current_user() re-reads the profile on every call, so callers always see
    the latest saved version rather than a snapshot.
    """

    def __init__(self, store: PersistentStore):
        self.store = store

    @property
    def user_id(self) -> Optional[str]:
        data = self.store.get_item(SESSION_KEY)
        if isinstance(data, dict):
            return data.get("userId")
        return None

    def current_user(self) -> Optional[UserProfile]:
        user_id = self.user_id
        if user_id is None:
            return None
        user = get_user(self.store, user_id)
        if user is None:
            logger.warning("Session points at unknown user", user_id=user_id)
        return user

    def login(self, user_id: str) -> UserProfile:
        user = get_user(self.store, user_id)
        if user is None:
            raise ValueError(f"Unknown user: {user_id}")
        self.store.set_item(SESSION_KEY, {"userId": user_id})
        logger.info("Session started", user_id=user_id)
        return user

    def logout(self) -> None:
        self.store.remove_item(SESSION_KEY)
        logger.info("Session ended")
