"""Per-session authorization index.

Holds the union of permission codes across a user's roles plus the
super-admin flag, and answers capability queries in constant time. The index
is published as one immutable snapshot, so a reader running concurrently with
``refresh()`` sees either the previous or the new index, never a mix.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Tuple

from stellar.core.exceptions import IndexRefreshError
from stellar.services.identity_service import IdentitySource

logger = logging.getLogger("stellar_console")

MENU_PREFIX = "menu:"


@dataclass(frozen=True)
class IndexSnapshot:
    codes: FrozenSet[str] = frozenset()
    is_super_admin: bool = False


EMPTY_SNAPSHOT = IndexSnapshot()

Observer = Callable[["AuthorizationIndex"], None]


class AuthorizationIndex:
    """Capability lookup for one user's session."""

    def __init__(self, user_id: int, identity_source: IdentitySource):
        self.user_id = user_id
        self._identity_source = identity_source
        self._snapshot = EMPTY_SNAPSHOT
        self._refresh_lock = threading.Lock()
        self._observers: List[Observer] = []

    @property
    def snapshot(self) -> IndexSnapshot:
        return self._snapshot

    @property
    def codes(self) -> FrozenSet[str]:
        return self._snapshot.codes

    @property
    def is_super_admin(self) -> bool:
        return self._snapshot.is_super_admin

    def has(self, code: str) -> bool:
        snapshot = self._snapshot
        return snapshot.is_super_admin or code in snapshot.codes

    def has_menu(self, code: str) -> bool:
        # Menu and API codes share storage but never stand in for each other.
        if not code or not code.startswith(MENU_PREFIX):
            return False
        return self.has(code)

    def refresh(self) -> Tuple[FrozenSet[str], bool]:
        """Reload grants from the identity source and swap them in.

        Raises:
            IndexRefreshError: If the identity source fails. The previous
                index stays in effect.
        """
        with self._refresh_lock:
            try:
                codes, is_super_admin = self._identity_source.load_grants(self.user_id)
            except Exception as e:
                logger.warning(
                    "Authorization refresh failed for user %s, keeping previous index: %s",
                    self.user_id, e,
                )
                raise IndexRefreshError("Could not refresh permissions; previous permissions kept") from e
            snapshot = IndexSnapshot(codes=frozenset(codes), is_super_admin=bool(is_super_admin))
            self._snapshot = snapshot
        logger.debug(
            "Authorization index for user %s refreshed: %d codes, super_admin=%s",
            self.user_id, len(snapshot.codes), snapshot.is_super_admin,
        )
        self._notify()
        return snapshot.codes, snapshot.is_super_admin

    def clear(self) -> None:
        """Drop every grant; called on logout."""
        with self._refresh_lock:
            self._snapshot = EMPTY_SNAPSHOT
        self._notify()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register a callback run after every refresh and clear."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def bind_logout(self, channel) -> Callable[[], None]:
        """Clear this index when ``channel`` announces the user's logout."""
        return channel.subscribe(self.user_id, self.clear)

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self)
            except Exception:
                logger.exception("Authorization index observer failed for user %s", self.user_id)
