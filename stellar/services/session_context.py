"""Session contexts, their registry, and the logout notification channel.

Every service call that depends on the caller's identity takes an explicit
``SessionContext``. Contexts are opened on login (or lazily on the first
authenticated request a process sees) and torn down on logout.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from stellar.core.exceptions import AuthorizationError
from stellar.db.session import SessionLocal
from stellar.services.authorization_index import AuthorizationIndex
from stellar.services.identity_service import DatabaseIdentitySource, IdentitySource
from stellar.services.menu_authorizer import MENU_TREE, MenuAuthorizer, MenuNode

logger = logging.getLogger("stellar_console")


class LogoutChannel:
    """Per-user logout notifications; subscriptions are dropped once fired."""

    def __init__(self):
        self._subscribers: Dict[int, List[Callable[[], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, user_id: int, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.setdefault(user_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(user_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def notify(self, user_id: int) -> None:
        with self._lock:
            callbacks = self._subscribers.pop(user_id, [])
        for callback in callbacks:
            callback()


@dataclass
class SessionContext:
    """Identity plus authorization index of one logged-in user."""

    user_id: int
    username: str
    organization_id: Optional[int]
    index: AuthorizationIndex
    _menu: Optional[List[MenuNode]] = field(default=None, repr=False)

    def __post_init__(self):
        self.index.subscribe(self._invalidate_menu)

    @property
    def is_super_admin(self) -> bool:
        return self.index.is_super_admin

    def has(self, code: str) -> bool:
        return self.index.has(code)

    def require(self, code: str) -> None:
        """Raise AuthorizationError unless the session holds ``code``."""
        if not self.index.has(code):
            raise AuthorizationError(f"Missing permission: {code}")

    def menu(self, tree: Sequence[MenuNode] = MENU_TREE) -> List[MenuNode]:
        """Filtered navigation tree; recomputed after every index change."""
        if tree is not MENU_TREE:
            return MenuAuthorizer(self.index).filter(tree)
        if self._menu is None:
            self._menu = MenuAuthorizer(self.index).filter(tree)
        return self._menu

    def _invalidate_menu(self, index: AuthorizationIndex) -> None:
        self._menu = None


class SessionRegistry:
    """Owns the live session contexts of this process."""

    def __init__(self, identity_source: IdentitySource, logout_channel: Optional[LogoutChannel] = None):
        self.identity_source = identity_source
        self.logout_channel = logout_channel or LogoutChannel()
        self._sessions: Dict[int, SessionContext] = {}
        self._logged_out_at: Dict[int, float] = {}
        self._lock = threading.Lock()

    def open(self, user_id: int) -> SessionContext:
        """Build a fresh context with a populated authorization index.

        Raises:
            AuthenticationError: If the user is unknown or deactivated.
            IndexRefreshError: If the initial grant lookup fails.
        """
        identity = self.identity_source.load_user(user_id)
        index = AuthorizationIndex(user_id, self.identity_source)
        index.refresh()
        ctx = SessionContext(
            user_id=identity.user_id,
            username=identity.username,
            organization_id=identity.organization_id,
            index=index,
        )
        with self._lock:
            previous = self._sessions.get(user_id)
            self._sessions[user_id] = ctx
        if previous is not None:
            previous.index.clear()
        index.bind_logout(self.logout_channel)
        logger.info("Session opened for user %s (%s)", identity.username, user_id)
        return ctx

    def issued_before_logout(self, user_id: int, issued_at: Optional[float]) -> bool:
        """True if a token issued at ``issued_at`` predates the user's last logout."""
        logged_out_at = self._logged_out_at.get(user_id)
        if logged_out_at is None:
            return False
        return issued_at is None or issued_at < logged_out_at

    def get(self, user_id: int) -> Optional[SessionContext]:
        return self._sessions.get(user_id)

    def get_or_open(self, user_id: int) -> SessionContext:
        ctx = self.get(user_id)
        if ctx is None:
            ctx = self.open(user_id)
        return ctx

    def refresh(self, user_id: int) -> None:
        """Re-pull grants for a live session, e.g. after a role change."""
        ctx = self.get(user_id)
        if ctx is not None:
            ctx.index.refresh()

    def close(self, user_id: int) -> None:
        """Tear down the user's session and announce the logout."""
        with self._lock:
            ctx = self._sessions.pop(user_id, None)
            self._logged_out_at[user_id] = time.time()
        self.logout_channel.notify(user_id)
        if ctx is not None:
            logger.info("Session closed for user %s (%s)", ctx.username, user_id)


session_registry = SessionRegistry(DatabaseIdentitySource(SessionLocal))


def get_session_registry() -> SessionRegistry:
    """FastAPI dependency returning the process-wide session registry."""
    return session_registry
