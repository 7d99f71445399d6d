"""Resource browsing: SHOW statements, caching and name checks."""

import pytest

from stellar.core.exceptions import AuthorizationError, ResourceNotFoundError, ValidationError
from stellar.services.catalog_service import CatalogService

from tests.fakes import FakeCache


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def alice(contexts):
    return contexts["alice"]


@pytest.fixture
def browser(fake_executor, cache):
    return CatalogService(executor_factory=lambda cluster: fake_executor, cache=cache)


def test_listings_are_cached(db, seeded, alice, browser, fake_executor):
    cluster_id = seeded["cluster"].id
    fake_executor.names["SHOW CATALOGS"] = ["default_catalog", "hive"]

    assert browser.list_catalogs(db, alice, cluster_id) == ["default_catalog", "hive"]
    assert browser.list_catalogs(db, alice, cluster_id) == ["default_catalog", "hive"]
    assert fake_executor.queries == ["SHOW CATALOGS"]


def test_databases_and_tables_are_quoted(db, seeded, alice, browser, fake_executor):
    cluster_id = seeded["cluster"].id
    fake_executor.names["SHOW TABLES FROM `hive`.`sales`"] = ["orders"]

    browser.list_databases(db, alice, cluster_id, "hive")
    assert browser.list_tables(db, alice, cluster_id, "hive", "sales") == ["orders"]
    assert fake_executor.queries == [
        "SHOW DATABASES FROM `hive`",
        "SHOW TABLES FROM `hive`.`sales`",
    ]


@pytest.mark.parametrize("catalog", ["", "hive`; DROP", "a b"])
def test_bad_names_never_reach_the_cluster(db, seeded, alice, browser, fake_executor, catalog):
    with pytest.raises(ValidationError):
        browser.list_databases(db, alice, seeded["cluster"].id, catalog)
    assert fake_executor.queries == []


def test_invalidate_drops_only_that_cluster(db, seeded, alice, browser, cache, fake_executor):
    cluster_id = seeded["cluster"].id
    browser.list_catalogs(db, alice, cluster_id)
    cache.store["catalogs:999"] = ["other"]

    browser.invalidate(cluster_id)
    assert "catalogs:999" in cache.store
    browser.list_catalogs(db, alice, cluster_id)
    assert fake_executor.queries == ["SHOW CATALOGS", "SHOW CATALOGS"]


def test_inactive_cluster_is_not_browsable(db, seeded, alice, browser):
    with pytest.raises(ResourceNotFoundError):
        browser.list_catalogs(db, alice, seeded["retired"].id)


@pytest.mark.parametrize("outsider", ["carol", "nobody"])
def test_other_organizations_cannot_browse(db, seeded, contexts, browser, fake_executor, outsider):
    cluster_id = seeded["cluster"].id
    browser.list_catalogs(db, contexts["alice"], cluster_id)
    with pytest.raises(AuthorizationError):
        browser.list_catalogs(db, contexts[outsider], cluster_id)
    with pytest.raises(AuthorizationError):
        browser.list_tables(db, contexts[outsider], cluster_id, "hive", "sales")
    assert fake_executor.queries == ["SHOW CATALOGS"]


def test_super_admin_browses_any_cluster(db, seeded, contexts, browser):
    assert browser.list_catalogs(db, contexts["root"], seeded["cluster"].id) == []
