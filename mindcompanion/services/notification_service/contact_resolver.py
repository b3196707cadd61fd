"""Per-batch contact resolution.

A ContactResolver is created for one enqueue call, one reminder run or one
dispatch batch, and discarded when it ends. Its cache is never shared
between runs, so concurrent batches cannot see each other's lookups.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Dict, Optional

from mindcompanion.shared.errors import ContactResolutionError
from mindcompanion.shared.models import ContactProfile, PreferredChannel
from mindcompanion.shared.utils import hash_pii
from .directory import IdentityStore, ProfileStore

logger = logging.getLogger(__name__)


def _clean_phone(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    phone = value.strip()
    return phone or None


class ContactResolver:
    """Resolves a user's email, phone and channel preference.

    Identity and profile lookups run concurrently and are bounded by
    timeout_seconds. Usable as a context manager; close() releases the
    lookup threads.
    """

    def __init__(
        self,
        identity_store: IdentityStore,
        profile_store: ProfileStore,
        timeout_seconds: float = 5.0,
    ):
        self.identity_store = identity_store
        self.profile_store = profile_store
        self.timeout_seconds = timeout_seconds
        self._cache: Dict[str, ContactProfile] = {}
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="contact-lookup")

    def __enter__(self) -> "ContactResolver":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def resolve(self, user_id: str) -> Optional[ContactProfile]:
        """Resolve contact details for a user.

        Returns:
            ContactProfile (possibly with no email and no phone), or None when
            the identity lookup fails or times out

        Logs:
            - CONTACT_IDENTITY_LOOKUP_FAILED: Identity lookup failed (warning)
            - CONTACT_PROFILE_LOOKUP_FAILED: Profile lookup failed (warning)
        """
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        identity_future = self._executor.submit(self.identity_store.get_email, user_id)
        profile_future = self._executor.submit(self.profile_store.get_contact_preferences, user_id)

        try:
            email = identity_future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            logger.warning(
                "CONTACT_IDENTITY_LOOKUP_FAILED",
                extra={"user_id_hash": hash_pii(user_id), "error": "timeout"}
            )
            return None
        except Exception as e:
            logger.warning(
                "CONTACT_IDENTITY_LOOKUP_FAILED",
                extra={
                    "user_id_hash": hash_pii(user_id),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return None

        try:
            preferences = profile_future.result(timeout=self.timeout_seconds) or {}
        except Exception as e:
            # Profile is optional; the user stays reachable by email
            logger.warning(
                "CONTACT_PROFILE_LOOKUP_FAILED",
                extra={
                    "user_id_hash": hash_pii(user_id),
                    "error": str(e) or "timeout",
                    "error_type": type(e).__name__,
                }
            )
            preferences = {}

        profile = ContactProfile(
            user_id=user_id,
            email=(email or None),
            phone=_clean_phone(preferences.get("crisis_contact_phone")),
            preferred_channel=PreferredChannel.parse(preferences.get("preferred_contact_method")),
        )
        self._cache[user_id] = profile
        return profile

    def require(self, user_id: str) -> ContactProfile:
        """Like resolve(), but raise instead of returning None.

        Raises:
            ContactResolutionError: If the user cannot be resolved
        """
        profile = self.resolve(user_id)
        if profile is None:
            user_id_hash = hash_pii(user_id)
            raise ContactResolutionError(
                "Missing user profile", user_id_hash=user_id_hash
            )
        return profile
