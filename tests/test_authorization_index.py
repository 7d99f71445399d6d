"""AuthorizationIndex: capability lookups, refresh, clear, observers."""

import pytest

from stellar.core.exceptions import IndexRefreshError
from stellar.services.authorization_index import AuthorizationIndex
from stellar.services.session_context import LogoutChannel

from tests.fakes import StaticIdentitySource


CODES = {"menu:dashboard", "menu:nodes:frontends", "api:roles:manage"}


def test_has_is_membership_for_regular_users():
    index = AuthorizationIndex(1, StaticIdentitySource(CODES))
    index.refresh()
    for code in CODES:
        assert index.has(code)
    assert not index.has("menu:system")
    assert not index.has("")


def test_super_admin_has_everything():
    index = AuthorizationIndex(1, StaticIdentitySource(is_super_admin=True))
    codes, is_super = index.refresh()
    assert codes == frozenset() and is_super
    assert index.has("menu:anything")
    assert index.has("api:whatever:write")


def test_menu_and_api_codes_are_not_interchangeable():
    index = AuthorizationIndex(1, StaticIdentitySource(CODES))
    index.refresh()
    assert index.has_menu("menu:dashboard")
    assert not index.has_menu("api:roles:manage")
    assert index.has("api:roles:manage")
    assert not index.has_menu("roles:manage")


def test_refresh_failure_keeps_previous_index():
    source = StaticIdentitySource(CODES)
    index = AuthorizationIndex(1, source)
    index.refresh()
    source.broken = True
    with pytest.raises(IndexRefreshError):
        index.refresh()
    assert index.has("menu:dashboard")


def test_refresh_picks_up_changes_atomically():
    source = StaticIdentitySource({"menu:dashboard"})
    index = AuthorizationIndex(1, source)
    index.refresh()
    before = index.snapshot
    source.codes = frozenset({"menu:overview"})
    index.refresh()
    assert before.codes == frozenset({"menu:dashboard"})
    assert index.codes == frozenset({"menu:overview"})


def test_clear_revokes_everything():
    index = AuthorizationIndex(1, StaticIdentitySource(CODES, is_super_admin=True))
    index.refresh()
    index.clear()
    assert not index.is_super_admin
    assert not any(index.has(code) for code in CODES)


def test_observers_run_after_refresh_and_clear():
    index = AuthorizationIndex(1, StaticIdentitySource(CODES))
    seen = []
    unsubscribe = index.subscribe(lambda idx: seen.append(len(idx.codes)))
    index.refresh()
    index.clear()
    assert seen == [3, 0]
    unsubscribe()
    index.refresh()
    assert seen == [3, 0]


def test_failing_observer_does_not_break_refresh():
    index = AuthorizationIndex(1, StaticIdentitySource(CODES))
    seen = []

    def broken(idx):
        raise RuntimeError("boom")

    index.subscribe(broken)
    index.subscribe(lambda idx: seen.append(True))
    index.refresh()
    assert seen == [True]
    assert index.has("menu:dashboard")


def test_logout_channel_clears_index():
    channel = LogoutChannel()
    index = AuthorizationIndex(1, StaticIdentitySource(CODES))
    index.refresh()
    index.bind_logout(channel)
    channel.notify(2)
    assert index.has("menu:dashboard")
    channel.notify(1)
    assert not index.has("menu:dashboard")
