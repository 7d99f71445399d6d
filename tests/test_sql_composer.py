"""Privilege SQL composition and request-details validation."""

import pytest

from stellar.core.exceptions import ValidationError
from stellar.services.permission_request_service import PermissionRequestService


def preview(request_type, **details):
    return PermissionRequestService().preview({"request_type": request_type, "request_details": details})


def test_table_grant_to_user():
    sql = preview("grant_permission", target_user="alice", resource_type="table",
                  database="sales", table="orders", permissions=["SELECT"])
    assert sql == "GRANT SELECT ON TABLE sales.orders TO USER alice"


def test_role_grantee():
    sql = preview("revoke_permission", target_role="analyst",
                  resource_type="database", catalog="default_catalog", database="sales",
                  permissions=["select", "Insert", "SELECT"])
    assert sql == "REVOKE SELECT, INSERT ON DATABASE default_catalog.sales FROM ROLE analyst"


def test_catalog_scope():
    sql = preview("grant_permission", target_user="report.bot", resource_type="catalog",
                  catalog="hive", permissions=["usage"])
    assert sql == "GRANT USAGE ON CATALOG hive TO USER report.bot"


def test_grant_role():
    assert preview("grant_role", target_user="alice", target_role="analyst") == "GRANT analyst TO alice"


def test_preview_is_deterministic():
    details = dict(target_user="alice", resource_type="table", catalog="c", database="d",
                   table="t", permissions=["ALTER", "drop"])
    assert preview("grant_permission", **details) == preview("grant_permission", **details)


@pytest.mark.parametrize("request_type,details", [
    # table scope needs the table name
    ("grant_permission", dict(target_user="alice", resource_type="table", database="sales",
                              permissions=["SELECT"])),
    # database scope must not name a table
    ("grant_permission", dict(target_user="alice", resource_type="database", database="sales",
                              table="orders", permissions=["SELECT"])),
    # catalog scope names nothing inside the catalog
    ("grant_permission", dict(target_user="alice", resource_type="catalog", catalog="hive",
                              database="sales", permissions=["USAGE"])),
    # table named without its database
    ("grant_permission", dict(target_user="alice", resource_type="table", catalog="hive",
                              table="orders", permissions=["SELECT"])),
    # no grantee, or both kinds at once
    ("grant_permission", dict(resource_type="table", database="s", table="t", permissions=["SELECT"])),
    ("grant_permission", dict(target_user="alice", target_role="analyst", resource_type="database",
                              database="sales", permissions=["SELECT"])),
    ("grant_permission", dict(target_user="alice", resource_type="table", database="s", table="t",
                              permissions=[])),
    ("grant_permission", dict(target_user="alice", resource_type="table", database="s", table="t",
                              permissions=["SELECT; DROP DATABASE s"])),
    ("grant_permission", dict(target_user="alice", resource_type="table", database="s",
                              table="orders`; DROP", permissions=["SELECT"])),
    ("grant_permission", dict(target_user="alice", resource_type="view", database="s", table="t",
                              permissions=["SELECT"])),
    # role grants carry no resource fields
    ("grant_role", dict(target_user="alice", target_role="analyst", resource_type="table")),
    ("grant_role", dict(target_user="alice")),
    ("grant_role", dict(target_user="   ", target_role="analyst")),
    ("drop_everything", dict(target_user="alice", target_role="analyst")),
])
def test_invalid_details_are_rejected(request_type, details):
    with pytest.raises(ValidationError):
        preview(request_type, **details)
