"""Cluster API router: registered clusters and catalog browsing."""

from typing import List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from stellar.core.security import get_session_context, require_cluster_admin
from stellar.db.session import get_db
from stellar.schemas.schemas import ClusterCreate, ClusterOut
from stellar.services.audit_service import audit_service
from stellar.services.catalog_service import CatalogService, get_catalog_service
from stellar.services.cluster_service import cluster_service
from stellar.services.session_context import SessionContext

router = APIRouter(prefix="/clusters", tags=["clusters"])


@router.get("", response_model=List[ClusterOut])
async def list_clusters(db: Session = Depends(get_db), ctx: SessionContext = Depends(get_session_context)):
    return cluster_service.list_visible(db, ctx.organization_id, ctx.is_super_admin)


@router.post("", response_model=ClusterOut, status_code=201)
async def register_cluster(
    body: ClusterCreate,
    request: Request,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_cluster_admin),
):
    """Register a cluster; outside super-admin it always belongs to the caller's organization."""
    organization_id = body.organization_id if ctx.is_super_admin else ctx.organization_id
    cluster = cluster_service.create(
        db, body.name, body.host, body.username, body.password,
        query_port=body.query_port, organization_id=organization_id,
    )
    audit_service.log_from_request(
        db, request, ctx.user_id, ctx.username, "cluster.registered", "cluster",
        resource_id=cluster.id, new_value={"name": cluster.name, "host": cluster.host},
        organization_id=organization_id,
    )
    return cluster


# Browsing waits on the cluster, so these run in the threadpool.
@router.get("/{cluster_id}/catalogs", response_model=List[str])
def list_catalogs(
    cluster_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    browser: CatalogService = Depends(get_catalog_service),
):
    return browser.list_catalogs(db, ctx, cluster_id)


@router.get("/{cluster_id}/catalogs/{catalog}/databases", response_model=List[str])
def list_databases(
    cluster_id: int,
    catalog: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    browser: CatalogService = Depends(get_catalog_service),
):
    return browser.list_databases(db, ctx, cluster_id, catalog)


@router.get("/{cluster_id}/catalogs/{catalog}/databases/{database}/tables", response_model=List[str])
def list_tables(
    cluster_id: int,
    catalog: str,
    database: str,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(get_session_context),
    browser: CatalogService = Depends(get_catalog_service),
):
    return browser.list_tables(db, ctx, cluster_id, catalog, database)
