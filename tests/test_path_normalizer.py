"""Redirect target normalization: same-origin, loop-free, idempotent."""

import pytest

from stellar.services.path_normalizer import PathNormalizer, RoutingMode

DEFAULT = "/pages/starrocks/dashboard"


@pytest.fixture
def normalizer():
    return PathNormalizer()


def test_collapses_repeated_main_section(normalizer):
    assert normalizer.normalize("/pages/starrocks/pages/starrocks/dashboard") == DEFAULT
    assert normalizer.normalize("/pages/starrocks/pages/starrocks/pages/starrocks/nodes") == \
        normalizer.normalize("/pages/starrocks/nodes")


@pytest.mark.parametrize("raw", ["/auth/login", "auth/login?returnUrl=/pages/x", "/stellar/auth/login"])
def test_auth_targets_fall_back_to_default_route(normalizer, raw):
    assert normalizer.normalize(raw) == DEFAULT


@pytest.mark.parametrize("raw", [None, "", "/", "https://evil.example", "/pages/../auth/login",
                                 "/dashboard", "javascript:alert(1)"])
def test_unroutable_targets_fall_back(normalizer, raw):
    assert normalizer.normalize(raw) == DEFAULT


def test_strips_foreign_origin(normalizer):
    assert normalizer.normalize("https://evil.example/pages/starrocks/queries") == "/pages/starrocks/queries"
    assert normalizer.normalize("//evil.example/pages/starrocks/queries") == "/pages/starrocks/queries"
    assert normalizer.normalize("\\\\evil.example\\pages\\starrocks\\queries") == "/pages/starrocks/queries"


def test_keeps_query_but_drops_nested_redirects(normalizer):
    result = normalizer.normalize("/pages/starrocks/queries?tab=slow&returnUrl=/auth/login&redirect=x")
    assert result == "/pages/starrocks/queries?tab=slow"


def test_deployment_base_comes_from_current_path(normalizer):
    current = "/console/pages/starrocks/overview"
    assert normalizer.normalize("/pages/starrocks/nodes", current) == "/console/pages/starrocks/nodes"
    # A prefix carried by the target itself is replaced by the deployment base.
    assert normalizer.normalize("/other/pages/starrocks/nodes", current) == "/console/pages/starrocks/nodes"
    assert normalizer.normalize("/auth/login", current) == "/console/pages/starrocks/dashboard"


def test_hash_mode_drops_base_and_reads_fragment(normalizer):
    current = "/console/#/pages/starrocks/overview"
    assert normalizer.detect_mode(current) is RoutingMode.hash
    assert normalizer.normalize("/console/#/pages/starrocks/sessions", current, RoutingMode.hash) == \
        "/pages/starrocks/sessions"
    assert normalizer.normalize("#/auth/login", current, RoutingMode.hash) == DEFAULT


def test_no_trailing_or_empty_segments(normalizer):
    assert normalizer.normalize("/pages//starrocks/./dashboard/") == DEFAULT
    assert normalizer.normalize("/pages/starrocks/ dashboard /") == DEFAULT


@pytest.mark.parametrize("raw", [
    "/pages/starrocks/pages/starrocks/dashboard",
    "https://host/x/pages/starrocks/nodes?a=1&returnUrl=/x",
    "/auth/login",
    "/pages/starrocks/queries?q=a%20b",
    "pages/starrocks/variables/",
])
@pytest.mark.parametrize("current", ["", "/console/pages/starrocks/overview"])
def test_idempotent(normalizer, raw, current):
    once = normalizer.normalize(raw, current)
    assert normalizer.normalize(once, current) == once


def test_login_path_and_default_route(normalizer):
    current = "/console/pages/starrocks/overview"
    assert normalizer.login_path(current, RoutingMode.path) == "/console/auth/login"
    assert normalizer.login_path(current, RoutingMode.hash) == "/auth/login"
    assert normalizer.default_route_for(current, RoutingMode.path) == "/console/pages/starrocks/dashboard"
