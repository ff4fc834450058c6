"""
Authenticated session state and the first-login channel.

SessionState holds the per-session flags that gate one-time work
(remote preference load, migration check). Everything resets on
sign-out, so the next sign-in starts clean.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .exceptions import HyokaiStorageError
from .remote.base import AccountStore, UserProfile

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Explicit per-session state container."""

    user_id: str | None = None
    profile: UserProfile | None = None
    preferences_loaded: bool = False
    migration_handled: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def sign_in(self, user_id: str) -> None:
        if self.user_id != user_id:
            self.sign_out()
        self.user_id = user_id

    def sign_out(self) -> None:
        self.user_id = None
        self.profile = None
        self.preferences_loaded = False
        self.migration_handled = False


@dataclass(frozen=True)
class FirstLoginEvent:
    """Published when an account without a migration flag signs in."""

    user_id: str
    profile: UserProfile


FirstLoginListener = Callable[[FirstLoginEvent], Awaitable[None] | None]


class AuthEvents:
    """Observer channel for auth events."""

    def __init__(self) -> None:
        self._listeners: list[FirstLoginListener] = []

    def subscribe(self, listener: FirstLoginListener) -> Callable[[], None]:
        """Register a first-login listener. Returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish_first_login(self, event: FirstLoginEvent) -> None:
        """Deliver ``event`` to every listener in subscription order."""
        for listener in list(self._listeners):
            result = listener(event)
            if inspect.isawaitable(result):
                await result


class AuthSession:
    """Tracks the signed-in account and its remote profile."""

    def __init__(self, account_store: AccountStore) -> None:
        self.account_store = account_store
        self.state = SessionState()
        self.events = AuthEvents()

    @property
    def user_id(self) -> str | None:
        return self.state.user_id

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    @property
    def profile(self) -> UserProfile | None:
        return self.state.profile

    @property
    def needs_migration(self) -> bool:
        """True while the signed-in account has no migration flag."""
        profile = self.state.profile
        return profile is not None and not profile.is_migrated

    async def sign_in(
        self,
        user_id: str,
        *,
        email: str | None = None,
        new_sign_in: bool = True,
    ) -> UserProfile | None:
        """Adopt ``user_id`` as the session's account and load its profile.

        Profile failures are logged and leave the session signed in
        without a profile. A new sign-in of an unmigrated account
        publishes ``FirstLoginEvent``; restoring an existing session
        (``new_sign_in=False``) does not.
        """
        self.state.sign_in(user_id)
        try:
            profile = await self.account_store.ensure_profile(user_id, email)
        except HyokaiStorageError as e:
            logger.error(f"Error fetching profile for {user_id}: {e}")
            return None

        self.state.profile = profile
        logger.info(f"Signed in {user_id} (migrated={profile.is_migrated})")

        if new_sign_in and not profile.is_migrated:
            await self.events.publish_first_login(FirstLoginEvent(user_id=user_id, profile=profile))
        return profile

    async def sign_out(self) -> None:
        if self.state.user_id:
            logger.info(f"Signed out {self.state.user_id}")
        self.state.sign_out()

    async def refresh_profile(self) -> UserProfile | None:
        """Re-read the profile, e.g. after migration sets the flag."""
        if self.state.user_id is None:
            return None
        try:
            profile = await self.account_store.get_profile(self.state.user_id)
        except HyokaiStorageError as e:
            logger.error(f"Error refreshing profile for {self.state.user_id}: {e}")
            return self.state.profile
        self.state.profile = profile
        return profile
