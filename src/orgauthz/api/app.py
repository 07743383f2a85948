"""Application factory for the orgauthz HTTP surface."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from orgauthz.common.logging import setup_logging
from orgauthz.core.rbac.errors import RoleCatalogError
from orgauthz.core.rbac.hierarchy import HierarchyModel
from orgauthz.core.rbac.registry import load_catalog
from orgauthz.db.database import DatabaseConfig, db, session_scope
from orgauthz.features.rbac.router import router as rbac_router
from orgauthz.features.rbac.service import RbacService
from orgauthz.settings import Settings, get_settings

from .errors import register_rbac_exception_handlers
from .middleware import register_middleware

logger = logging.getLogger(__name__)


async def load_runtime_hierarchy(settings: Settings) -> HierarchyModel:
    """Prefer the stored roles; fall back to the configured catalog."""

    catalog = load_catalog(settings.role_catalog_path)
    async with session_scope() as session:
        service = RbacService(session=session, catalog=catalog)
        try:
            return await service.load_hierarchy()
        except RoleCatalogError:
            logger.warning(
                "rbac.hierarchy.catalog_fallback",
                extra={"detail": "no stored roles; run `orgauthz roles sync`"},
            )
            return HierarchyModel(catalog.roles)


def create_application_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        db.init(DatabaseConfig.from_settings(settings))
        app.state.rbac_hierarchy = await load_runtime_hierarchy(settings)
        logger.info("app.startup", extra={"roles": len(app.state.rbac_hierarchy)})
        try:
            yield
        finally:
            await db.dispose()
            logger.info("app.shutdown")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Return a configured FastAPI application."""

    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(title=settings.app_name, lifespan=create_application_lifespan(settings))
    app.state.settings = settings

    register_middleware(app)
    register_rbac_exception_handlers(app)
    app.include_router(rbac_router)
    return app


__all__ = ["create_app", "create_application_lifespan", "load_runtime_hierarchy"]
