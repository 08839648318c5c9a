"""Shared dependencies for Aether web routes.

Usage:
    from aether.web.dependencies import get_org

    @router.get("/api/thing")
    async def handler(org: str | None = None):
        org_id = get_org(org)
"""

from __future__ import annotations

import secrets

from fastapi import Header, HTTPException, status

from aether.config import get_config
from aether.utils.cache import KPICache, RedisKPICache

# Global singleton for the shared KPI cache
_kpi_cache: RedisKPICache | None = None


def get_org(org: str | None = None) -> str:
    """Organization ID from the query/form value, falling back to the configured default.

    Authentication is handled upstream; the org is trusted as given.
    """
    return org or get_config().org_id


def get_kpi_cache() -> KPICache | None:
    """Redis KPI cache when enabled in config, else None (no caching)."""
    global _kpi_cache

    cache_config = get_config().cache
    if not cache_config.enabled:
        return None
    if _kpi_cache is None:
        _kpi_cache = RedisKPICache.from_url(cache_config.redis_url)
    return _kpi_cache


def _matches(expected: str, provided: str | None) -> bool:
    return provided is not None and secrets.compare_digest(expected, provided)


def require_internal_secret(
    x_internal_secret: str | None = Header(default=None),
) -> None:
    """Guard for service-to-service calls; open when INTERNAL_API_SECRET is unset."""
    expected = get_config().security.internal_api_secret
    if expected and not _matches(expected, x_internal_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    """Guard for admin endpoints; closed when ADMIN_KEY is unset."""
    expected = get_config().security.admin_key
    if not expected or not _matches(expected, x_admin_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
