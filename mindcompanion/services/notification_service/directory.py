"""Identity and profile lookups used to resolve contact details.

Narrow ports stand in for the identity provider and the profile and
counselor tables:
- IdentityStore: user id -> verified email
- ProfileStore: user id -> contact preference and crisis contact phone
- CounselorStore: user ids of active counselors who receive crisis alerts
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from mindcompanion.shared.database import (
    BaseRepository,
    ConnectionManager,
    NotFoundError,
)

logger = logging.getLogger(__name__)


class IdentityStore(ABC):
    """Identity provider lookup."""

    @abstractmethod
    def get_email(self, user_id: str) -> Optional[str]:
        """Return the user's email (None if they have none).

        Raises:
            NotFoundError: If the user does not exist
            RepositoryError: If the lookup fails
        """
        pass


class ProfileStore(ABC):
    """Profile table lookup."""

    @abstractmethod
    def get_contact_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return {"preferred_contact_method", "crisis_contact_phone"} or None."""
        pass


class InMemoryIdentityStore(IdentityStore):

    def __init__(self, emails: Optional[Dict[str, Optional[str]]] = None):
        self._emails: Dict[str, Optional[str]] = dict(emails or {})
        self._lock = threading.Lock()

    def add_user(self, user_id: str, email: Optional[str] = None) -> None:
        with self._lock:
            self._emails[user_id] = email

    def get_email(self, user_id: str) -> Optional[str]:
        with self._lock:
            if user_id not in self._emails:
                raise NotFoundError(f"User {user_id} not found")
            return self._emails[user_id]


class InMemoryProfileStore(ProfileStore):

    def __init__(self, profiles: Optional[Dict[str, Dict[str, Any]]] = None):
        self._profiles: Dict[str, Dict[str, Any]] = dict(profiles or {})
        self._lock = threading.Lock()

    def set_profile(
        self,
        user_id: str,
        preferred_contact_method: Optional[str] = None,
        crisis_contact_phone: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._profiles[user_id] = {
                "preferred_contact_method": preferred_contact_method,
                "crisis_contact_phone": crisis_contact_phone,
            }

    def get_contact_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            profile = self._profiles.get(user_id)
            return dict(profile) if profile is not None else None


class PostgresIdentityStore(BaseRepository[Optional[str]], IdentityStore):
    """auth_users table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "auth_users")

    def _row_to_entity(self, row: tuple) -> Optional[str]:
        return row[0]

    def get_email(self, user_id: str) -> Optional[str]:
        row = self._fetch_one("SELECT email FROM auth_users WHERE id = %s", (user_id,))
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return self._row_to_entity(row)


class PostgresProfileStore(BaseRepository[Dict[str, Any]], ProfileStore):
    """profiles table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "profiles")

    def _row_to_entity(self, row: tuple) -> Dict[str, Any]:
        return {
            "preferred_contact_method": row[0],
            "crisis_contact_phone": row[1],
        }

    def get_contact_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self._fetch_one(
            "SELECT preferred_contact_method, crisis_contact_phone "
            "FROM profiles WHERE user_id = %s",
            (user_id,),
        )
        return self._row_to_entity(row) if row else None


class CounselorStore(ABC):
    """Counselors on duty for crisis alerts."""

    @abstractmethod
    def list_active_user_ids(self) -> List[str]:
        """User ids of active counselors, in a stable order.

        Raises:
            RepositoryError: If the lookup fails
        """
        pass


class InMemoryCounselorStore(CounselorStore):

    def __init__(self, user_ids: Optional[Iterable[str]] = None):
        self._active: Dict[str, bool] = {user_id: True for user_id in user_ids or ()}
        self._lock = threading.Lock()

    def set_active(self, user_id: str, active: bool = True) -> None:
        with self._lock:
            self._active[user_id] = active

    def list_active_user_ids(self) -> List[str]:
        with self._lock:
            return sorted(user_id for user_id, active in self._active.items() if active)


class PostgresCounselorStore(BaseRepository[str], CounselorStore):
    """counselors table; rows without a linked user account are skipped."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "counselors")

    def _row_to_entity(self, row: tuple) -> str:
        return row[0]

    def list_active_user_ids(self) -> List[str]:
        rows = self._fetch_all(
            "SELECT user_id FROM counselors "
            "WHERE is_active AND user_id IS NOT NULL "
            "ORDER BY user_id"
        )
        return [self._row_to_entity(row) for row in rows]
