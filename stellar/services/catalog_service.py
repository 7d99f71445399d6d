"""Catalog / database / table browsing for a managed cluster.

Backs the resource pickers of the request form. Listings are cached in Redis
per cluster for ``CATALOG_CACHE_TTL_SECONDS``.
"""

import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from stellar.core.config import settings
from stellar.core.exceptions import ValidationError
from stellar.executor.builtin import get_executor
from stellar.schemas.schemas import IDENTIFIER_PATTERN
from stellar.services.cache_service import CacheService, cache_service
from stellar.services.cluster_service import cluster_service
from stellar.services.session_context import SessionContext

logger = logging.getLogger("stellar_console")


def _identifier(value: str, what: str) -> str:
    if not value or not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(f"Invalid {what} name: {value!r}")
    return value


class CatalogService:

    def __init__(self, executor_factory: Optional[Callable] = None, cache: Optional[CacheService] = None):
        self._executor_factory = executor_factory or get_executor
        self._cache = cache or cache_service

    def list_catalogs(self, db: Session, ctx: SessionContext, cluster_id: int) -> List[str]:
        return self._listing(db, ctx, cluster_id, f"catalogs:{cluster_id}", "SHOW CATALOGS")

    def list_databases(self, db: Session, ctx: SessionContext, cluster_id: int, catalog: str) -> List[str]:
        catalog = _identifier(catalog, "catalog")
        return self._listing(
            db, ctx, cluster_id, f"catalogs:{cluster_id}:{catalog}",
            f"SHOW DATABASES FROM `{catalog}`",
        )

    def list_tables(self, db: Session, ctx: SessionContext, cluster_id: int, catalog: str,
                    database: str) -> List[str]:
        catalog = _identifier(catalog, "catalog")
        database = _identifier(database, "database")
        return self._listing(
            db, ctx, cluster_id, f"catalogs:{cluster_id}:{catalog}:{database}",
            f"SHOW TABLES FROM `{catalog}`.`{database}`",
        )

    def invalidate(self, cluster_id: int) -> None:
        self._cache.invalidate_pattern(f"catalogs:{cluster_id}")
        self._cache.invalidate_pattern(f"catalogs:{cluster_id}:*")

    def _listing(self, db: Session, ctx: SessionContext, cluster_id: int, key: str, sql: str) -> List[str]:
        # Visibility check precedes any cache read.
        cluster = cluster_service.get_visible(db, cluster_id, ctx.organization_id, ctx.is_super_admin)
        cached = self._cache.get_json(key)
        if cached is not None:
            return cached
        names = self._executor_factory(cluster).fetch_names(sql)
        self._cache.set_json(key, names, settings.CATALOG_CACHE_TTL_SECONDS)
        logger.debug("Cached %d names for %s", len(names), key)
        return names


catalog_service = CatalogService()


def get_catalog_service() -> CatalogService:
    """FastAPI dependency returning the catalog browser."""
    return catalog_service
